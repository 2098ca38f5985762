import json

import pytest

from models import BackendConfig, BackendPoolConfig
from storage.backend_repository import (
    BackendRepositoryError,
    InMemoryBackendRepository,
    JsonFileBackendRepository,
)


def _single(backend_id: str, name: str = "", model_id: str = "gpt-4o") -> BackendConfig:
    return BackendConfig(
        id=backend_id, display_name=name, provider="openai", secret=f"sk-{backend_id}", model_id=model_id
    )


def _pool(pool_id: str, members: list[str]) -> BackendPoolConfig:
    return BackendPoolConfig(id=pool_id, display_name="Pool", provider="openai", backend_ids=members)


@pytest.fixture(params=["memory", "json"])
def repository(request, tmp_path):
    if request.param == "memory":
        return InMemoryBackendRepository()
    return JsonFileBackendRepository(str(tmp_path / "store" / "backends.json"))


@pytest.mark.asyncio
async def test_empty_store(repository):
    assert await repository.get_all() == []
    assert await repository.get_by_id("missing") is None


@pytest.mark.asyncio
async def test_add_and_get_by_id(repository):
    await repository.add(_single("k1"))
    await repository.add(_pool("p1", ["k1"]))
    stored = await repository.get_by_id("p1")
    assert isinstance(stored, BackendPoolConfig)
    assert stored.backend_ids == ["k1"]
    assert [c.id for c in await repository.get_all()] == ["k1", "p1"]


@pytest.mark.asyncio
async def test_adding_single_with_existing_id_overwrites(repository):
    await repository.add(_single("k1", name="old"))
    await repository.add(_single("k1", name="new"))
    configs = await repository.get_all()
    assert len(configs) == 1
    assert configs[0].display_name == "new"


@pytest.mark.asyncio
async def test_pool_with_existing_id_is_rejected(repository):
    await repository.add(_single("k1"))
    await repository.add(_pool("p1", ["k1"]))
    with pytest.raises(BackendRepositoryError):
        await repository.add(_pool("p1", ["k1"]))
    with pytest.raises(BackendRepositoryError):
        await repository.add(_pool("k1", ["k1"]))


@pytest.mark.asyncio
async def test_empty_pool_is_rejected(repository):
    with pytest.raises(BackendRepositoryError):
        await repository.add(_pool("p1", []))
    assert await repository.get_all() == []


@pytest.mark.asyncio
async def test_update_replaces_in_place_or_appends(repository):
    await repository.add(_single("k1"))
    await repository.add(_single("k2"))
    await repository.update(_single("k1", model_id="gpt-4.1"))
    await repository.update(_single("k3"))
    configs = await repository.get_all()
    assert [c.id for c in configs] == ["k1", "k2", "k3"]
    assert configs[0].model_id == "gpt-4.1"


@pytest.mark.asyncio
async def test_remove_drops_member_from_every_pool(repository):
    for backend_id in ("k1", "k2"):
        await repository.add(_single(backend_id))
    await repository.add(_pool("p1", ["k1", "k2"]))
    await repository.add(_pool("p2", ["k2"]))

    await repository.remove("k2")

    assert await repository.get_by_id("k2") is None
    assert (await repository.get_by_id("p1")).backend_ids == ["k1"]
    assert (await repository.get_by_id("p2")).backend_ids == []


@pytest.mark.asyncio
async def test_json_store_uses_camel_case_names(tmp_path):
    path = tmp_path / "backends.json"
    repository = JsonFileBackendRepository(str(path))
    await repository.add(_single("k1"))
    await repository.add(_pool("p1", ["k1"]))

    stored = json.loads(path.read_text(encoding="utf-8"))
    assert stored[0]["apiKey"] == "sk-k1"
    assert stored[0]["modelId"] == "gpt-4o"
    assert stored[1]["configType"] == "pool"
    assert stored[1]["backendIds"] == ["k1"]
    assert list(tmp_path.iterdir()) == [path]


@pytest.mark.asyncio
async def test_json_store_reads_untagged_entries(tmp_path):
    path = tmp_path / "backends.json"
    path.write_text(
        json.dumps([{"id": "k1", "name": "Legacy", "provider": "google", "apiKey": "g"}]),
        encoding="utf-8",
    )
    configs = await JsonFileBackendRepository(str(path)).get_all()
    assert isinstance(configs[0], BackendConfig)
    assert configs[0].display_name == "Legacy"


@pytest.mark.asyncio
async def test_json_store_rejects_non_array(tmp_path):
    path = tmp_path / "backends.json"
    path.write_text('{"id": "k1"}', encoding="utf-8")
    with pytest.raises(BackendRepositoryError):
        await JsonFileBackendRepository(str(path)).get_all()


@pytest.mark.asyncio
async def test_json_store_treats_blank_file_as_empty(tmp_path):
    path = tmp_path / "backends.json"
    path.write_text("  \n", encoding="utf-8")
    assert await JsonFileBackendRepository(str(path)).get_all() == []
