import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
REPO_ROOT = Path(__file__).resolve().parents[3]
if str(SRC) not in sys.path:
    sys.path.append(str(SRC))
if str(REPO_ROOT) not in sys.path:
    sys.path.append(str(REPO_ROOT))

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("OPENAI_API_HOST", "https://upstream.test")
os.environ.setdefault("OPENAI_API_TYPE", "openai")
os.environ.setdefault("OPENAI_API_KEY", "sk-test-environment-key")
os.environ.setdefault("OPENAI_API_MAX_TOKENS", "1000")

from relay_api import settings as settings_module

settings_module.get_settings.cache_clear()

import relay_api.main as relay_main
import relay_api.relay as relay_module

from .utils import fake_tokenizer, mock_client_factory


@pytest.fixture()
def tokenizer():
    return fake_tokenizer()


@pytest.fixture()
def mock_upstream(monkeypatch):
    def install(handler):
        monkeypatch.setattr(relay_module, "_make_client", mock_client_factory(handler))

    return install


@pytest.fixture()
def client(monkeypatch, tokenizer):
    monkeypatch.setattr(relay_main, "get_tokenizer", lambda: tokenizer)
    return TestClient(relay_main.app)
