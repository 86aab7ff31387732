import os
from pathlib import Path

import pytest

# Test folder -> marker added to every test collected from it
_FOLDER_MARKERS = {
    "domain": "domain",
    "application": "application",
    "integration": "integration",
    "bdd": "bdd",
}


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Protean config environment (PROTEAN_ENV) for the test run",
    )


def pytest_sessionstart(session):
    """Select the Protean environment before the inventory domain is initialized."""
    os.environ["PROTEAN_ENV"] = session.config.option.env


def pytest_collection_modifyitems(config, items):
    """Mark tests by the folder they live in.

    Integration tests run the Protean providers and are also marked slow,
    unless marked fast explicitly.
    """
    for item in items:
        folders = set(Path(str(item.fspath)).parts)
        for folder, marker in _FOLDER_MARKERS.items():
            if folder in folders:
                item.add_marker(getattr(pytest.mark, marker))

        if "integration" in folders and item.get_closest_marker("fast") is None:
            item.add_marker(pytest.mark.slow)
