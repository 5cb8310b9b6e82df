from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest


def pytest_report_header(config: pytest.Config) -> list[str]:
    headers: list[str] = []
    addopts: str = os.environ.get("PYTEST_ADDOPTS", "")
    if addopts:
        headers.append(f"PYTEST_ADDOPTS: {addopts}")
    return headers


PYTEST_PLUGINS_PACKAGE = "tests.pytest_plugins"


pytest_plugins = [
    f"{PYTEST_PLUGINS_PACKAGE}.auto_markers",
    f"{PYTEST_PLUGINS_PACKAGE}.ssl_module",
]

if TYPE_CHECKING:
    # Import pytest plugins so Pylance can suggest defined fixtures

    from .pytest_plugins import (  # noqa: F401
        auto_markers as auto_markers,
        ssl_module as ssl_module,
    )
