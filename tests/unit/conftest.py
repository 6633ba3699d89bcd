"""Conftest for unit tests - mark everything under tests/unit as a unit test."""

import pytest


def pytest_collection_modifyitems(config, items):
    """Add the unit marker to tests collected from the unit directory that lack it."""
    for item in items:
        if "unit" in item.path.parts and item.get_closest_marker("unit") is None:
            item.add_marker(pytest.mark.unit)
