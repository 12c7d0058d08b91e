"""Tests for logger level configuration."""

import logging

import pytest

from helm_calendar.logging_config import configure_logging, resolve_level

pytestmark = pytest.mark.unit


@pytest.fixture(autouse=True)
def restore_levels():
    names = ("", "helm_calendar", "httpx", "aiohttp.access", "aiohttp.web", "asyncio")
    saved = {name: logging.getLogger(name).level for name in names}
    yield
    for name, level in saved.items():
        logging.getLogger(name).setLevel(level)


class TestResolveLevel:
    def test_default_is_info(self):
        assert resolve_level() == logging.INFO
        assert resolve_level(debug_mode=True) == logging.DEBUG

    def test_level_name(self):
        assert resolve_level("warning") == logging.WARNING
        assert resolve_level("chatty") == logging.INFO

    def test_env_level_beats_argument(self, monkeypatch):
        monkeypatch.setenv("HELM_LOG_LEVEL", "ERROR")

        assert resolve_level("DEBUG") == logging.ERROR

    def test_debug_env_wins(self, monkeypatch):
        monkeypatch.setenv("HELM_LOG_LEVEL", "ERROR")
        monkeypatch.setenv("HELM_DEBUG", "yes")

        assert resolve_level("WARNING") == logging.DEBUG


class TestConfigureLogging:
    def test_third_party_loggers_quieted(self):
        level = configure_logging("DEBUG")

        assert level == logging.DEBUG
        assert logging.getLogger("helm_calendar").level == logging.DEBUG
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("aiohttp.web").level == logging.INFO

    def test_third_party_never_louder_than_package(self):
        configure_logging("ERROR")

        assert logging.getLogger("httpx").level == logging.ERROR
        assert logging.getLogger("aiohttp.web").level == logging.ERROR
