from src.utils.config_loader import ConfigLoader

CONFIG = """
app:
  name: Test
  url: ${TEST_APP_URL:http://localhost:3000}
security:
  secret_key: ${TEST_SECRET}
auth:
  min_password_length: 10
"""


def _write(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG, encoding="utf-8")
    return str(path)


def test_placeholders_use_defaults_and_environment(tmp_path, monkeypatch):
    monkeypatch.delenv("TEST_APP_URL", raising=False)
    monkeypatch.setenv("TEST_SECRET", "s3cret")
    cfg = ConfigLoader(_write(tmp_path))

    assert cfg.get("app.url") == "http://localhost:3000"
    assert cfg.get("security.secret_key") == "s3cret"
    assert cfg.get_auth_config()["min_password_length"] == 10


def test_explicit_env_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@db/nog")
    monkeypatch.setenv("APP_URL", "https://app.example.com")
    cfg = ConfigLoader(_write(tmp_path))

    assert cfg.get_database_config()["url"] == "postgresql://u:p@db/nog"
    assert cfg.get("app.url") == "https://app.example.com"


def test_missing_keys_and_file(tmp_path):
    cfg = ConfigLoader(str(tmp_path / "missing.yaml"))
    assert cfg.get("app.name", "Nog") == "Nog"
    assert cfg.get_rbac_config() == {}


def test_sections_are_copies(tmp_path):
    cfg = ConfigLoader(_write(tmp_path))
    section = cfg.get_auth_config()
    section["min_password_length"] = 1
    assert cfg.get("auth.min_password_length") == 10


def test_trusted_origins(tmp_path, monkeypatch):
    monkeypatch.delenv("TEST_APP_URL", raising=False)
    monkeypatch.delenv("APP_URL", raising=False)
    monkeypatch.delenv("TRUSTED_ORIGINS", raising=False)
    assert ConfigLoader(_write(tmp_path)).get_trusted_origins() == ["http://localhost:3000"]

    monkeypatch.setenv("TRUSTED_ORIGINS", "https://App.example.com/, https://admin.example.com")
    assert ConfigLoader(_write(tmp_path)).get_trusted_origins() == [
        "https://app.example.com", "https://admin.example.com",
    ]
