# storage/backend_repository.py
"""Persistence for credential configurations and pools."""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
from abc import ABC, abstractmethod

import structlog

from config import BACKENDS_FILE_PATH
from models import (
    BackendConfig,
    BackendPoolConfig,
    dump_backend_list,
    is_backend_pool,
    parse_backend_list,
)

logger = structlog.get_logger(__name__)

AnyConfig = BackendConfig | BackendPoolConfig


class BackendRepositoryError(ValueError):
    """A configuration change the repository refuses to store."""


def _with_member_removed(config: AnyConfig, backend_id: str) -> AnyConfig:
    if is_backend_pool(config) and backend_id in config.backend_ids:
        return config.model_copy(
            update={"backend_ids": [bid for bid in config.backend_ids if bid != backend_id]}
        )
    return config


def _apply_add(configs: list[AnyConfig], config: AnyConfig) -> list[AnyConfig]:
    if is_backend_pool(config):
        if not config.backend_ids:
            raise BackendRepositoryError(
                f"Backend pool '{config.display_name or config.id}' has no members."
            )
        if any(existing.id == config.id for existing in configs):
            raise BackendRepositoryError(f"Backend pool with ID {config.id} already exists.")
    return [existing for existing in configs if existing.id != config.id] + [config]


def _apply_update(configs: list[AnyConfig], config: AnyConfig) -> list[AnyConfig]:
    for index, existing in enumerate(configs):
        if existing.id == config.id:
            return configs[:index] + [config] + configs[index + 1 :]
    return configs + [config]


def _apply_remove(configs: list[AnyConfig], backend_id: str) -> list[AnyConfig]:
    return [
        _with_member_removed(existing, backend_id)
        for existing in configs
        if existing.id != backend_id
    ]


class BackendRepository(ABC):
    """Async store of single credentials and credential pools."""

    @abstractmethod
    async def get_all(self) -> list[AnyConfig]: ...

    @abstractmethod
    async def add(self, config: AnyConfig) -> None:
        """Store ``config``.

        A single credential overwrites any entry with the same id. A pool must
        have members and a fresh id.
        """

    @abstractmethod
    async def update(self, config: AnyConfig) -> None:
        """Replace the entry with ``config``'s id in place, or append it."""

    @abstractmethod
    async def remove(self, backend_id: str) -> None:
        """Delete ``backend_id`` and drop it from every pool that lists it."""

    async def get_by_id(self, backend_id: str) -> AnyConfig | None:
        for config in await self.get_all():
            if config.id == backend_id:
                return config
        return None


class InMemoryBackendRepository(BackendRepository):
    def __init__(self, configs: list[AnyConfig] | None = None) -> None:
        self._configs: list[AnyConfig] = list(configs or [])

    async def get_all(self) -> list[AnyConfig]:
        return list(self._configs)

    async def add(self, config: AnyConfig) -> None:
        self._configs = _apply_add(self._configs, config)

    async def update(self, config: AnyConfig) -> None:
        self._configs = _apply_update(self._configs, config)

    async def remove(self, backend_id: str) -> None:
        self._configs = _apply_remove(self._configs, backend_id)


class JsonFileBackendRepository(BackendRepository):
    """Configurations stored as one JSON array, using the camelCase wire names."""

    def __init__(self, path: str = BACKENDS_FILE_PATH) -> None:
        self.path = path
        self._lock = asyncio.Lock()

    async def get_all(self) -> list[AnyConfig]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._read_sync)

    async def add(self, config: AnyConfig) -> None:
        await self._mutate(lambda configs: _apply_add(configs, config))
        logger.info("Stored backend configuration.", backend_id=config.id)

    async def update(self, config: AnyConfig) -> None:
        await self._mutate(lambda configs: _apply_update(configs, config))

    async def remove(self, backend_id: str) -> None:
        await self._mutate(lambda configs: _apply_remove(configs, backend_id))
        logger.info("Removed backend configuration.", backend_id=backend_id)

    async def _mutate(self, change) -> None:
        async with self._lock:
            loop = asyncio.get_running_loop()
            configs = await loop.run_in_executor(None, self._read_sync)
            updated = change(configs)
            await loop.run_in_executor(None, self._write_sync, updated)

    def _read_sync(self) -> list[AnyConfig]:
        if not os.path.exists(self.path):
            return []
        with open(self.path, encoding="utf-8") as f:
            raw = f.read()
        if not raw.strip():
            return []
        data = json.loads(raw)
        if not isinstance(data, list):
            raise BackendRepositoryError(
                f"Backend store '{self.path}' does not contain a JSON array."
            )
        return parse_backend_list(data)

    def _write_sync(self, configs: list[AnyConfig]) -> None:
        directory = os.path.dirname(self.path) or "."
        os.makedirs(directory, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(
            dir=directory, prefix=".backends-", suffix=".json.tmp"
        )
        try:
            with os.fdopen(fd, "wb") as tmp_write:
                tmp_write.write(dump_backend_list(configs))
            os.replace(temp_path, self.path)
        except Exception:
            if os.path.exists(temp_path):
                os.remove(temp_path)
            raise
