import json

import pytest

import main
from config import settings
from core.errors import AuthError
from models import StepResponse, WorldDocument
from orchestration import cli_runner
from ui.rich_display import WorldProgressDisplay


class FakeService:
    def __init__(self, error=None):
        self.error = error

    async def generate_step(self, player_input, current_state, callbacks):
        callbacks.on_chunk("The ")
        callbacks.on_chunk("The road")
        if self.error:
            callbacks.on_error(self.error)
            return
        callbacks.on_complete(
            StepResponse.model_validate(
                {"narrativeBlock": {"text": "The road"}, "choices": [{"text": "Walk on"}]}
            )
        )

    async def generate_world(self, setup, on_progress=None):
        on_progress("World anchored.")
        return WorldDocument.model_validate({"lore": [{"title": setup.genre}]})


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch):
    monkeypatch.setattr(cli_runner, "setup_logging", lambda: None)


@pytest.fixture
def backends_file(tmp_path):
    path = tmp_path / "backends.json"
    path.write_text(
        json.dumps(
            [
                {"id": "k1", "name": "Main", "provider": "openai", "apiKey": "sk", "modelId": "gpt-4o"},
                {"id": "p1", "name": "Pool", "provider": "openai", "configType": "pool", "backendIds": ["k1"]},
            ]
        ),
        encoding="utf-8",
    )
    return str(path)


def _use_service(monkeypatch, service):
    async def fake_resolve(factory, repository, backend_id):
        return service

    monkeypatch.setattr(cli_runner, "_resolve_service", fake_resolve)


def test_parser_requires_a_command():
    with pytest.raises(SystemExit):
        main.build_parser().parse_args([])


def test_backends_command_lists_configs(backends_file, capsys):
    assert main.main(["--backends-file", backends_file, "backends"]) == 0
    out = capsys.readouterr().out
    assert "k1" in out
    assert "p1" in out


def test_turn_command_streams_text(monkeypatch, tmp_path, backends_file, capsys):
    state_file = tmp_path / "state.json"
    state_file.write_text(json.dumps({"setup": {"modelId": "gpt-4o"}}), encoding="utf-8")
    _use_service(monkeypatch, FakeService())

    code = main.main(
        ["--backends-file", backends_file, "turn", "k1", str(state_file), "--input", "walk"]
    )

    assert code == 0
    out = capsys.readouterr().out
    assert "The road" in out
    assert "Walk on" in out


def test_turn_command_reports_errors(monkeypatch, tmp_path, backends_file, capsys):
    state_file = tmp_path / "state.json"
    state_file.write_text("{}", encoding="utf-8")
    _use_service(monkeypatch, FakeService(error=AuthError("HTTP 401")))

    code = main.main(
        ["--backends-file", backends_file, "turn", "k1", str(state_file), "--input", "walk"]
    )

    assert code == 1
    assert AuthError().message in capsys.readouterr().out


def test_world_command_writes_output(monkeypatch, tmp_path, backends_file):
    output = tmp_path / "world.json"
    _use_service(monkeypatch, FakeService())

    code = main.main(
        ["--backends-file", backends_file, "world", "k1", "--genre", "noir", "--output", str(output)]
    )

    assert code == 0
    assert json.loads(output.read_text(encoding="utf-8"))["lore"][0]["title"] == "noir"


def test_unknown_backend_exits(backends_file):
    with pytest.raises(SystemExit):
        main.main(["--backends-file", backends_file, "models", "nope"])


def test_world_progress_is_printed_without_panel(monkeypatch, tmp_path, backends_file, capsys):
    monkeypatch.setattr(settings, "ENABLE_RICH_PROGRESS", False)
    _use_service(monkeypatch, FakeService())

    code = main.main(
        ["--backends-file", backends_file, "world", "k1", "--output", str(tmp_path / "w.json")]
    )

    assert code == 0
    assert "World anchored." in capsys.readouterr().out


@pytest.mark.asyncio
async def test_progress_display_tracks_stages(monkeypatch):
    monkeypatch.setattr(settings, "ENABLE_RICH_PROGRESS", False)
    display = WorldProgressDisplay("p1")
    display.start()
    display.on_progress("Parsing the world matrix...")
    display.on_progress("World anchored.")
    await display.stop()
    assert display.live is None
    assert display.stages_reached == 2
    assert display.status_text_current_stage.plain == "Stage: World anchored."
