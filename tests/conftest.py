import logging

import pytest
from fastapi.testclient import TestClient

from cdn_server.config import Settings
from cdn_server.main import create_app

USERNAME = "admin"
PASSWORD = "secret"
MAX_UPLOAD_SIZE = 1024 * 1024  # 1MB


@pytest.fixture
def upload_dir(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture
def settings(upload_dir, tmp_path):
    return Settings(
        uploads_dir=upload_dir,
        max_upload_size=MAX_UPLOAD_SIZE,
        username=USERNAME,
        password=PASSWORD,
        log_dir=tmp_path / "logs",
    )


@pytest.fixture
def logger():
    return logging.getLogger("cdn_server.tests")


@pytest.fixture
def client(settings, logger):
    app = create_app(settings, logger)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth():
    return (USERNAME, PASSWORD)
