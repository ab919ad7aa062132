"""Shared test fixtures and configuration for backend tests."""
from typing import Generator

import pytest
from fastapi.testclient import TestClient

from flowshare.config import AppConfig, StorageSettings
from flowshare.files.router import get_room_files, set_room_files
from flowshare.files.service import RoomFiles
from flowshare.main import create_app


@pytest.fixture
def storage_root(tmp_path):
    """A fresh storage root per test."""
    return tmp_path / "uploads"


@pytest.fixture
def app_config(storage_root) -> AppConfig:
    return AppConfig(
        storage=StorageSettings(root_dir=str(storage_root), max_upload_bytes=1024),
    )


@pytest.fixture
def room_files(storage_root) -> RoomFiles:
    """Services over the per-test storage root, without the HTTP layer."""
    files = RoomFiles.build(storage_root, max_upload_bytes=1024, chunk_size=64)
    files.resolver.ensure_root()
    return files


@pytest.fixture
def api_client(app_config) -> Generator[TestClient, None, None]:
    """Provide a TestClient for an app bound to the per-test storage root.

    Entering the client runs the lifespan, which installs the services.
    """
    original = get_room_files()
    app = create_app(app_config)
    with TestClient(app) as client:
        yield client
    set_room_files(original)
