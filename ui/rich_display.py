from __future__ import annotations

import asyncio
import time

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.text import Text

from config import settings


class WorldProgressDisplay:
    """Live panel showing the world pipeline stage while a world is generated."""

    def __init__(self, backend_label: str, console: Console | None = None) -> None:
        self.live: Live | None = None
        self.group: Group | None = None
        self.status_text_backend: Text = Text(f"Backend: {backend_label}")
        self.status_text_current_stage: Text = Text("Stage: Initializing...")
        self.status_text_stages_done: Text = Text("Stages Reached: 0")
        self.status_text_elapsed_time: Text = Text("Elapsed Time: 0s")
        self.stages_reached: int = 0
        self.run_start_time: float = 0.0
        self._stop_event: asyncio.Event = asyncio.Event()
        self._task: asyncio.Task | None = None

        if settings.ENABLE_RICH_PROGRESS:
            self.group = Group(
                self.status_text_backend,
                self.status_text_current_stage,
                self.status_text_stages_done,
                self.status_text_elapsed_time,
            )
            self.live = Live(
                Panel(
                    self.group,
                    title="Arcloom World Anchoring",
                    border_style="blue",
                    expand=True,
                ),
                console=console,
                refresh_per_second=4,
                transient=False,
                redirect_stdout=False,
                redirect_stderr=False,
            )

    def start(self) -> None:
        self.run_start_time = time.time()
        if self.live:
            self.live.start()
            self._stop_event.clear()
            self._task = asyncio.create_task(self._auto_refresh())

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task:
            await self._task
            self._task = None
        if self.live and self.live.is_started:
            self.update()
            self.live.stop()

    async def _auto_refresh(self) -> None:
        while not self._stop_event.is_set():
            self.update()
            await asyncio.sleep(1)

    def on_progress(self, message: str) -> None:
        """Progress callback for the world pipeline."""
        self.stages_reached += 1
        self.update(stage=message)

    def update(self, stage: str | None = None) -> None:
        if stage is not None:
            self.status_text_current_stage.plain = f"Stage: {stage}"
        self.status_text_stages_done.plain = f"Stages Reached: {self.stages_reached}"
        elapsed_seconds = time.time() - self.run_start_time if self.run_start_time else 0.0
        self.status_text_elapsed_time.plain = (
            f"Elapsed Time: {time.strftime('%H:%M:%S', time.gmtime(elapsed_seconds))}"
        )
