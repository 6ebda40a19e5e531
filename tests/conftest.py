# tests/conftest.py
import pytest

from app import create_app


@pytest.fixture
def env_file(tmp_path, monkeypatch):
    path = tmp_path / ".env"
    path.write_text("", encoding="utf-8")
    monkeypatch.setenv("WORKS_REFRESH_TOKEN", "")
    return path


@pytest.fixture
def app(env_file):
    app = create_app({
        "TESTING":             True,
        "SECRET_KEY":          "test-secret",
        "WORKS_CLIENT_ID":     "client-id",
        "WORKS_CLIENT_SECRET": "client-secret",
        "WORKS_REDIRECT_URI":  "https://example.com/callback",
        "WORKS_SCOPE":         "bot user.read",
        "WORKS_REFRESH_TOKEN": None,
        "DOTENV_PATH":         str(env_file),
        "DISPATCH_SECRET":     "cron-key",
    })
    return app


@pytest.fixture
def client(app):
    return app.test_client()
