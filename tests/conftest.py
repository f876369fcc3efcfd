import json
from pathlib import Path
from typing import Any, Dict, List

import pytest
from flask import Flask
from flask.testing import FlaskClient

from app import create_app
from services.config import Settings
from services.sandbox import Sandbox
from services.trash import RecycleStore


@pytest.fixture
def root(tmp_path: Path) -> Path:
    data = tmp_path / "data"
    data.mkdir()
    return data


@pytest.fixture
def settings(root: Path) -> Settings:
    return Settings(root=str(root), progress_interval=0.0, chunk_size=4096)


@pytest.fixture
def sandbox(settings: Settings) -> Sandbox:
    return Sandbox(settings.root, policy=settings.path_policy)


@pytest.fixture
def recycle(sandbox: Sandbox, settings: Settings) -> RecycleStore:
    return RecycleStore(sandbox, dirname=settings.trash_dirname, protected=settings.protected)


@pytest.fixture
def app(settings: Settings) -> Flask:
    application = create_app(settings)
    application.config["TESTING"] = True
    return application


@pytest.fixture
def client(app: Flask) -> FlaskClient:
    return app.test_client()


def parse_ndjson(body: bytes) -> List[Dict[str, Any]]:
    return [json.loads(line) for line in body.decode("utf-8").splitlines() if line.strip()]


@pytest.fixture
def run_op(client: FlaskClient):
    def _run(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
        resp = client.post("/api/files", json=payload)
        assert resp.status_code == 200
        assert resp.mimetype == "application/x-ndjson"
        return parse_ndjson(resp.get_data())

    return _run
