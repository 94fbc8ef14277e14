import pytest

from config import Config
from database import Database


@pytest.fixture
def config(tmp_path):
    return Config(
        gemini_api_key="test-key",
        db_path=tmp_path / "briefings.db",
        reports_dir=tmp_path / "reports",
        log_dir=tmp_path / "log",
        extract_timeout_seconds=5.0,
        synthesize_timeout_seconds=5.0,
    )


@pytest.fixture
def db(config):
    database = Database(config.db_path)
    yield database
    database.close()
