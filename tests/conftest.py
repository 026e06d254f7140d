import json
from unittest.mock import MagicMock

import pytest

from core.config import Settings


@pytest.fixture
def make_settings():
    """Build settings without reading the environment's .env file."""

    def _make(**overrides):
        values = {
            "EXECUTION_BACKEND": "docker",
            "REDIS_URL": "redis://bus:6379/0",
            "BUS_TOPIC": "dggarchiver",
            "WORKER_IMAGE": "ghcr.io/dgghq/dggarchiver-worker:test",
            "DOCKER_NETWORK": "dggarchiver",
            "K8S_NAMESPACE": "archive",
            "K8S_CPU_LIMIT": "500m",
            "K8S_MEMORY_LIMIT": "2Gi",
            "API_KEY": "test-key",
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def settings(make_settings):
    return make_settings()


@pytest.fixture
def docker_client():
    client = MagicMock()
    client.api.create_container.return_value = {"Id": "c0ffee"}
    return client


@pytest.fixture
def batch_api():
    return MagicMock()


@pytest.fixture
def youtube_payload():
    return json.dumps({"id": "abc123", "platform": "youtube"}).encode("utf-8")


@pytest.fixture
def write_plugin(tmp_path):
    """Write a plugin script to a temporary file and return its path."""

    def _write(source: str, name: str = "plugin.lua") -> str:
        path = tmp_path / name
        path.write_text(source, encoding="utf-8")
        return str(path)

    return _write
