"""Smoke test: every module of the package imports and logging initialises."""

import importlib

import pytest

MODULES = [
    "gigdiscovery.config",
    "gigdiscovery.logging_config",
    "gigdiscovery.models",
    "gigdiscovery.utils.cache",
    "gigdiscovery.utils.dates",
    "gigdiscovery.utils.debounce",
    "gigdiscovery.utils.geo",
    "gigdiscovery.db.repository",
    "gigdiscovery.services.discovery",
    "gigdiscovery.services.discovery.api",
]


@pytest.mark.parametrize("name", MODULES)
def test_module_imports(name):
    assert importlib.import_module(name) is not None


def test_setup_logging():
    from gigdiscovery.logging_config import setup_logging

    logger = setup_logging("test")
    assert logger.name == "test"
    assert logger.handlers
