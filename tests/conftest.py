"""Shared fixtures: an empty data directory, managers on top of it, and an HTTP client."""

import pytest
from fastapi.testclient import TestClient

from flatstore.buckets import BucketManager
from flatstore.config import StorageConfig
from flatstore.main import create_app
from flatstore.objects import ObjectManager


@pytest.fixture
def data_dir(tmp_path):
    path = tmp_path / "data"
    path.mkdir()
    return str(path)


@pytest.fixture
def buckets(data_dir):
    return BucketManager(data_dir)


@pytest.fixture
def objects(buckets):
    return ObjectManager(buckets)


@pytest.fixture
def server_dir(tmp_path):
    """Data directory for the app; left uncreated so startup has to create it."""
    return tmp_path / "server-data"


@pytest.fixture
def client(server_dir):
    app = create_app(StorageConfig(data_dir=str(server_dir)))
    with TestClient(app) as test_client:
        yield test_client
