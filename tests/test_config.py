import pytest

from notebook_website.backend.config import Settings


def test_defaults(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    settings = Settings()

    assert settings.database_path == "notebook.db"
    assert settings.session_ttl_minutes == 60
    assert settings.reset_token_ttl_minutes == 30
    assert settings.smtp_host is None
    assert settings.image_fetch_timeout == 10.0
    assert settings.port == 8000


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("NOTEBOOK_DATABASE_PATH", "/data/notes.db")
    monkeypatch.setenv("NOTEBOOK_SESSION_TTL_MINUTES", "5")
    monkeypatch.setenv("NOTEBOOK_SMTP_HOST", "smtp.example.com")
    monkeypatch.setenv("NOTEBOOK_COOKIE_SECURE", "true")

    settings = Settings()

    assert settings.database_path == "/data/notes.db"
    assert settings.session_ttl_minutes == 5
    assert settings.smtp_host == "smtp.example.com"
    assert settings.cookie_secure is True


def test_dotenv_file_is_read(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".env").write_text("NOTEBOOK_LOG_LEVEL=DEBUG\nUNRELATED=1\n")

    assert Settings().log_level == "DEBUG"


def test_invalid_ttl_is_rejected(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("NOTEBOOK_RESET_TOKEN_TTL_MINUTES", "0")

    with pytest.raises(ValueError):
        Settings()
