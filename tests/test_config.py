from __future__ import annotations

import logging

from triage.core.config import Settings, get_settings
from triage.core.logging import configure_logging, init_tracer, shutdown_tracer


def test_settings_read_prefixed_environment(monkeypatch):
    monkeypatch.setenv("TRIAGE_API_BASE_URL", "https://support.example.com")
    monkeypatch.setenv("TRIAGE_QUEUE_REFRESH_INTERVAL", "15")
    monkeypatch.setenv("TRIAGE_DEFAULT_PAGE_SIZE", "50")

    settings = Settings()

    assert settings.api_base_url == "https://support.example.com"
    assert settings.queue_refresh_interval == 15.0
    assert settings.default_page_size == 50
    assert settings.detail_refresh_interval == 10.0
    assert settings.allowed_page_sizes == (10, 25, 50, 100)


def test_get_settings_is_cached():
    get_settings.cache_clear()
    assert get_settings() is get_settings()
    get_settings.cache_clear()


def test_configure_logging_quiets_http_transport():
    logger = configure_logging(Settings(log_level="debug", app_name="triage-test"))

    assert logger.name == "triage-test"
    assert logging.getLogger().level == logging.DEBUG
    assert logging.getLogger("triage").level == logging.DEBUG
    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("httpcore").level == logging.WARNING

    configure_logging(Settings(log_level="error", http_log_level="info"))
    assert logging.getLogger("httpx").level == logging.ERROR


def test_tracer_disabled_by_default():
    assert init_tracer(Settings()) is None


def test_otlp_headers_come_from_settings():
    settings = Settings(otel_exporter_otlp_headers="api-key=abc, tenant = blue,broken")

    assert settings.otel_headers == {"api-key": "abc", "tenant": "blue"}
    assert Settings().otel_headers == {}


def test_tracer_is_owned_by_the_first_session():
    settings = Settings(otel_enabled=True, otel_service_name="triage-test", environment="ci")

    provider = init_tracer(settings)
    try:
        assert provider.resource.attributes["service.name"] == "triage-test"
        assert provider.resource.attributes["deployment.environment"] == "ci"
        assert init_tracer(settings) is None
    finally:
        shutdown_tracer(provider)
