# orchestration/cli_runner.py
"""Command-line runner for the Arcloom generation layer."""

from __future__ import annotations

import argparse
import asyncio
import json
from typing import Any

import structlog
from rich.console import Console
from rich.table import Table

from config import settings
from core.errors import ArcloomError
from models import (
    GameSetupOptions,
    StepResponse,
    WorldDocument,
    is_backend_pool,
)
from providers import ServiceFactory, StreamingCallbacks
from storage.backend_repository import BackendRepository, JsonFileBackendRepository
from ui.rich_display import WorldProgressDisplay
from utils.logging import bind_backend_context, setup_logging

logger = structlog.get_logger(__name__)

console = Console()


def _setup_from_args(args: argparse.Namespace) -> GameSetupOptions:
    return GameSetupOptions(
        genre=args.genre, era=args.era, gender=args.gender, romance=args.romance
    )


def _emit_world(world: WorldDocument, output: str | None) -> None:
    text = world.model_dump_json(by_alias=True, exclude_none=True, indent=2)
    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(text)
        console.print(f"World written to [bold]{output}[/bold].")
    else:
        console.print_json(text)


async def _resolve_service(
    factory: ServiceFactory, repository: BackendRepository, backend_id: str
):
    config = await repository.get_by_id(backend_id)
    if config is None:
        raise SystemExit(f"No backend configuration with id '{backend_id}'.")
    return factory.create_for(config, repository)


async def _list_backends(repository: BackendRepository) -> None:
    table = Table(title="Backends")
    for column in ("ID", "Name", "Provider", "Kind", "Type", "Model / Members"):
        table.add_column(column)
    for config in await repository.get_all():
        detail = (
            ", ".join(config.backend_ids)
            if is_backend_pool(config)
            else (config.model_id or "-")
        )
        table.add_row(
            config.id,
            config.display_name,
            config.provider.value,
            config.generation_kind.value,
            config.config_type,
            detail,
        )
    console.print(table)


async def _list_models(service) -> None:
    for model in await service.list_available_models():
        console.print(f"{model.id}\t{model.display_name}")


async def _with_progress(backend_id: str, build_world) -> WorldDocument:
    display = WorldProgressDisplay(backend_id, console)
    display.start()
    try:
        return await build_world(display.on_progress if display.live else console.print)
    finally:
        await display.stop()


async def _generate_world(service, args: argparse.Namespace) -> None:
    setup = _setup_from_args(args)
    world = await _with_progress(
        args.backend_id,
        lambda on_progress: service.generate_world(setup, on_progress),
    )
    _emit_world(world, args.output)


async def _complete_world(service, args: argparse.Namespace) -> None:
    with open(args.file, encoding="utf-8") as f:
        partial = WorldDocument.model_validate(json.load(f))
    setup = _setup_from_args(args)
    world = await _with_progress(
        args.backend_id,
        lambda on_progress: service.complete_world(partial, setup, on_progress),
    )
    _emit_world(world, args.output)


async def _play_turn(service, args: argparse.Namespace) -> int:
    with open(args.state, encoding="utf-8") as f:
        state: dict[str, Any] = json.load(f)

    shown = 0
    outcome: dict[str, Any] = {}

    def on_chunk(text: str) -> None:
        nonlocal shown
        if len(text) > shown:
            console.print(text[shown:], end="", markup=False, highlight=False)
            shown = len(text)

    def on_complete(response: StepResponse) -> None:
        outcome["response"] = response

    def on_error(error: ArcloomError) -> None:
        outcome["error"] = error

    await service.generate_step(
        args.input, state, StreamingCallbacks(on_chunk, on_complete, on_error)
    )
    console.print()
    if "error" in outcome:
        console.print(
            f"[red]{outcome['error'].describe(settings.DETAILED_ERRORS)}[/red]"
        )
        return 1
    response: StepResponse = outcome["response"]
    for number, choice in enumerate(response.choices, start=1):
        console.print(f"[bold]{number}.[/bold] {choice.text}")
    if response.game_state_update:
        console.print_json(json.dumps(response.game_state_update, ensure_ascii=False))
    return 0


async def _run(args: argparse.Namespace) -> int:
    repository = JsonFileBackendRepository(args.backends_file)
    factory = ServiceFactory()
    try:
        if args.command == "backends":
            await _list_backends(repository)
            return 0
        service = await _resolve_service(factory, repository, args.backend_id)
        with bind_backend_context(backend_id=args.backend_id):
            if args.command == "models":
                await _list_models(service)
            elif args.command == "world":
                await _generate_world(service, args)
            elif args.command == "complete":
                await _complete_world(service, args)
            elif args.command == "turn":
                return await _play_turn(service, args)
        return 0
    finally:
        await factory.aclose()


def run(args: argparse.Namespace) -> int:
    """Configure logging and run the requested command; returns the exit code."""
    setup_logging()
    try:
        return asyncio.run(_run(args))
    except ArcloomError as err:
        logger.error("Command failed.", command=args.command, error=err.describe(True))
        console.print(f"[red]{err.describe(settings.DETAILED_ERRORS)}[/red]")
        return 1
    except KeyboardInterrupt:
        logger.info("Arcloom shutting down gracefully due to KeyboardInterrupt...")
        return 130
