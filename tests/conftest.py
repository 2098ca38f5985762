# tests/conftest.py
import os
import sys

import pytest

# Ensure repository root is on PYTHONPATH for tests
repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if repo_root not in sys.path:
    sys.path.insert(0, repo_root)

# Keep test runs from writing logs or backend stores into the working tree
os.environ.setdefault("BASE_OUTPUT_DIR", os.path.join(repo_root, ".pytest_output"))
os.environ.setdefault("LLM_RETRY_DELAY_SECONDS", "0")

from config import settings  # noqa: E402


@pytest.fixture(autouse=True)
def _fast_retries(monkeypatch):
    monkeypatch.setattr(settings, "LLM_RETRY_DELAY_SECONDS", 0.0)
    monkeypatch.setattr(settings, "REPAIR_SAFE_MODE", False)
