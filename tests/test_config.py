from buildlogger_service.config import (  # type: ignore[import]
  DEFAULT_BASE_URL,
  DEFAULT_STORE_TIMEOUT_SECONDS,
  DEFAULT_STORE_URL,
  load_service_config,
  load_store_config,
)


def test_service_config_defaults(monkeypatch):
  for name in ("BUILDLOGGER_BASE_URL", "BUILDLOGGER_HOST", "BUILDLOGGER_PORT", "BUILDLOGGER_CORS_ORIGINS"):
    monkeypatch.delenv(name, raising=False)
  cfg = load_service_config()
  assert cfg.base_url == DEFAULT_BASE_URL == "https://cedar.mongodb.com"
  assert cfg.host == "localhost"
  assert cfg.port == 8080
  assert cfg.cors_origins == ["*"]


def test_service_config_from_env(monkeypatch):
  monkeypatch.setenv("BUILDLOGGER_BASE_URL", "https://logs.example.com")
  monkeypatch.setenv("BUILDLOGGER_PORT", "9000")
  monkeypatch.setenv("BUILDLOGGER_CORS_ORIGINS", "https://a.example.com, https://b.example.com")
  cfg = load_service_config()
  assert cfg.base_url == "https://logs.example.com"
  assert cfg.port == 9000
  assert cfg.cors_origins == ["https://a.example.com", "https://b.example.com"]


def test_service_config_falls_back_on_invalid_port(monkeypatch):
  monkeypatch.setenv("BUILDLOGGER_PORT", "eighty")
  assert load_service_config().port == 8080


def test_store_timeout_defaults_when_unset(monkeypatch):
  monkeypatch.delenv("BUILDLOGGER_STORE_TIMEOUT_SECONDS", raising=False)
  monkeypatch.delenv("BUILDLOGGER_STORE_URL", raising=False)
  cfg = load_store_config()
  assert cfg.timeout_seconds == DEFAULT_STORE_TIMEOUT_SECONDS
  assert cfg.url == DEFAULT_STORE_URL


def test_store_timeout_clamps_to_min_and_max(monkeypatch):
  monkeypatch.setenv("BUILDLOGGER_STORE_TIMEOUT_SECONDS", "0")
  assert load_store_config().timeout_seconds == 1.0

  monkeypatch.setenv("BUILDLOGGER_STORE_TIMEOUT_SECONDS", "9999")
  assert load_store_config().timeout_seconds == 600.0


def test_store_timeout_falls_back_on_invalid_value(monkeypatch):
  monkeypatch.setenv("BUILDLOGGER_STORE_TIMEOUT_SECONDS", "soon")
  assert load_store_config().timeout_seconds == DEFAULT_STORE_TIMEOUT_SECONDS
