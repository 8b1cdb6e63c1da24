from __future__ import annotations

import json
import os
from pathlib import Path

import pytest
import structlog

from Medical_Conformance.config.settings import get_settings


@pytest.fixture(autouse=True)
def _isolate_settings(monkeypatch):
    for key in list(os.environ):
        if key.startswith("MC_"):
            monkeypatch.delenv(key, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


@pytest.fixture
def patient() -> dict:
    return {
        "resourceType": "Patient",
        "id": "patient-1",
        "gender": "female",
        "birthDate": "1970-01-01",
        "name": [{"family": "Doe", "given": ["Jane"]}],
        "identifier": [{"system": "urn:mrn", "value": "12345"}],
    }


@pytest.fixture
def observation_with_warning() -> dict:
    return {
        "resourceType": "Observation",
        "id": "obs-1",
        "status": "final",
        "code": {"coding": [{"code": "8867-4"}]},
    }


@pytest.fixture
def invalid_patient() -> dict:
    return {"resourceType": "Patient", "id": "patient-bad", "gender": "martian"}


@pytest.fixture
def write_resource(tmp_path: Path):
    def _write(name: str, payload: dict | str, directory: Path | None = None) -> Path:
        target = (directory or tmp_path) / name
        target.parent.mkdir(parents=True, exist_ok=True)
        text = payload if isinstance(payload, str) else json.dumps(payload)
        target.write_text(text, encoding="utf-8")
        return target

    return _write
