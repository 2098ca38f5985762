import copy

import pytest
import structlog

from core.errors import ErrorCategory, PoolEmpty
from models import (
    AvailableModel,
    BackendConfig,
    BackendPoolConfig,
    GameSetupOptions,
    WorldStep,
)
from providers import OpenAIAdapter, RotatingPoolService, ServiceFactory, StreamingCallbacks
from storage.backend_repository import InMemoryBackendRepository

WORLD_RESPONSES = {
    WorldStep.SEEDING: {"lore": [{"title": "Aether", "type": "Power"}]},
    WorldStep.PLAYER_STATS: {"playerStatsSchema": [{"name": "Grit"}]},
    WorldStep.FACTIONS: {"lore": [{"title": "Guild", "type": "Organization"}]},
    WorldStep.HISTORY: {"lore": [{"title": "Fall", "type": "History"}]},
    WorldStep.COMPANIONS: {"companions": [{"id": "c1", "name": "Mira"}]},
    WorldStep.QUESTS: {"mainQuests": [{"title": "Go"}]},
}


class FakeAdapter:
    def __init__(self, config):
        self.config = config
        self.world_steps = []

    async def generate_step(self, player_input, current_state, callbacks):
        await callbacks.on_chunk(f"{self.config.id}:{player_input}")

    async def run_world_step(self, step, setup, context):
        self.world_steps.append(step)
        return copy.deepcopy(WORLD_RESPONSES[step])

    async def generate_image(self, prompt, aspect_ratio="1:1"):
        return f"data:image/png;base64,{self.config.id}"

    async def list_available_models(self):
        return [AvailableModel(id=f"{self.config.id}-model")]


class RecordingFactory:
    def __init__(self):
        self.adapters = {}
        self.selected = []

    def create(self, config):
        self.selected.append(config.id)
        adapter = self.adapters.setdefault(config.id, FakeAdapter(config))
        adapter.config = config
        return adapter


def _single(backend_id, provider="openai", kind="text"):
    return BackendConfig(
        id=backend_id,
        provider=provider,
        generation_kind=kind,
        secret=f"sk-{backend_id}",
        model_id="m",
    )


def _pool(members, pool_id="p1"):
    return BackendPoolConfig(
        id=pool_id, display_name="Main pool", provider="openai", backend_ids=members
    )


async def _service(configs, members):
    pool = _pool(members)
    repository = InMemoryBackendRepository(list(configs) + [pool])
    factory = RecordingFactory()
    return RotatingPoolService(pool, repository, factory), repository, factory


@pytest.mark.asyncio
async def test_members_rotate_in_pool_order():
    service, _, factory = await _service(
        [_single("a"), _single("b"), _single("c")], ["a", "b", "c"]
    )
    for _ in range(4):
        await service.select_next()
    assert factory.selected == ["a", "b", "c", "a"]


@pytest.mark.asyncio
async def test_removed_member_drops_out_without_error():
    service, repository, factory = await _service(
        [_single("a"), _single("b"), _single("c")], ["a", "b", "c"]
    )
    await service.select_next()
    await repository.remove("b")
    await service.select_next()
    await service.select_next()
    assert factory.selected == ["a", "c", "a"]


@pytest.mark.asyncio
async def test_pool_membership_is_reloaded():
    service, repository, factory = await _service([_single("a"), _single("b")], ["a"])
    await service.select_next()
    await repository.update(_pool(["a", "b"]))
    await service.select_next()
    await service.select_next()
    assert factory.selected == ["a", "a", "b"]
    assert service.pool.backend_ids == ["a", "b"]


@pytest.mark.asyncio
async def test_empty_pool_raises_pool_empty():
    service, repository, _ = await _service([_single("a")], ["a"])
    await repository.remove("a")
    with pytest.raises(PoolEmpty) as excinfo:
        await service.select_next()
    assert excinfo.value.pool_id == "p1"
    assert excinfo.value.category is ErrorCategory.POOL_EMPTY
    assert "Main pool" in excinfo.value.describe(detailed=True)


@pytest.mark.asyncio
async def test_ineligible_members_are_skipped():
    nested = _pool(["a"], pool_id="inner")
    service, repository, factory = await _service(
        [_single("a"), _single("g", provider="google"), _single("img", kind="image"), nested],
        ["g", "inner", "img", "missing", "a"],
    )
    await service.select_next()
    await service.select_next()
    assert factory.selected == ["a", "a"]


@pytest.mark.asyncio
async def test_generate_step_delegates_to_selected_member():
    service, _, _ = await _service([_single("a"), _single("b")], ["a", "b"])
    chunks = []

    async def on_chunk(text):
        chunks.append(text)

    callbacks = StreamingCallbacks(on_chunk, lambda r: None, lambda e: None)
    await service.generate_step("look", {}, callbacks)
    await service.generate_step("run", {}, callbacks)
    assert chunks == ["a:look", "b:run"]


@pytest.mark.asyncio
async def test_generate_step_on_empty_pool_raises():
    service, _, _ = await _service([], [])
    callbacks = StreamingCallbacks(lambda t: None, lambda r: None, lambda e: None)
    with pytest.raises(PoolEmpty):
        await service.generate_step("look", {}, callbacks)


@pytest.mark.asyncio
async def test_world_generation_rotates_per_step():
    service, _, factory = await _service([_single("a"), _single("b")], ["a", "b"])
    world = await service.generate_world(GameSetupOptions())

    assert world.is_complete()
    assert factory.selected == ["a", "b", "a", "b", "a", "b"]
    assert factory.adapters["a"].world_steps[0] is WorldStep.SEEDING
    assert len(factory.adapters["a"].world_steps) == 3
    assert len(factory.adapters["b"].world_steps) == 3


@pytest.mark.asyncio
async def test_world_completion_rotates_too():
    service, _, factory = await _service([_single("a"), _single("b")], ["a", "b"])
    partial = {"lore": [{"title": "Aether", "type": "Power"}], "mainQuests": [{"title": "Go"}]}
    world = await service.complete_world(partial, GameSetupOptions())
    assert world.is_complete()
    assert factory.selected == ["a", "b", "a", "b"]


@pytest.mark.asyncio
async def test_image_and_model_listing_delegate():
    service, _, _ = await _service([_single("a"), _single("b")], ["a", "b"])
    assert await service.generate_image("a castle") == "data:image/png;base64,a"
    models = await service.list_available_models()
    assert models == [AvailableModel(id="b-model")]


def test_requires_a_pool_config():
    with pytest.raises(TypeError):
        RotatingPoolService(_single("a"), InMemoryBackendRepository(), RecordingFactory())


@pytest.mark.asyncio
async def test_real_factory_builds_pool_and_single_services():
    factory = ServiceFactory()
    repository = InMemoryBackendRepository([_single("a"), _pool(["a"])])
    try:
        pooled = factory.create_for(_pool(["a"]), repository)
        single = factory.create_for(_single("a"), repository)
        assert isinstance(pooled, RotatingPoolService)
        assert isinstance(single, OpenAIAdapter)
        assert await pooled.select_next() is single
    finally:
        await factory.aclose()


@pytest.mark.asyncio
async def test_delegated_calls_bind_pool_member_log_context():
    seen = []

    class ContextAdapter(FakeAdapter):
        async def generate_image(self, prompt, aspect_ratio="1:1"):
            seen.append(structlog.contextvars.get_contextvars())
            return await super().generate_image(prompt, aspect_ratio)

    service, _, factory = await _service([_single("a")], ["a"])
    factory.adapters["a"] = ContextAdapter(_single("a"))

    await service.generate_image("a castle")

    assert seen == [{"pool_id": "p1", "backend_id": "a"}]
    assert structlog.contextvars.get_contextvars() == {}
