from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

# Ensure `backend/` is on sys.path so `import modular_monolith.*` works in tests.
BACKEND_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(BACKEND_DIR))

from modular_monolith.settings import Settings  # noqa: E402

_ENV_VARS = (
    "APP_ENVIRONMENT",
    "OTEL_EXPORTER_OTLP_ENDPOINT",
    "OTEL_EXPORTER_OTLP_HEADERS",
    "OTEL_SERVICE_NAME",
    "LOG_LEVEL",
    "HOST",
    "PORT",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    for name in list(os.environ):
        if name.upper().startswith("SERVICES__"):
            monkeypatch.delenv(name)


@pytest.fixture
def make_settings():
    def _make(**overrides) -> Settings:
        values = {"environment": "development", "otel_exporter_otlp_endpoint": None}
        values.update(overrides)
        return Settings(**values)

    return _make
