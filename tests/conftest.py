"""Pytest configuration for blockmove tests."""

import logging
from pathlib import Path

import pytest
from PIL import Image

logging.getLogger("blockmove").handlers.clear()


def pytest_collection_modifyitems(config, items):
    """Mark tests by directory and set timeouts: unit=1s, integration=5s."""
    for item in items:
        if "integration" in item.path.parts:
            item.add_marker(pytest.mark.integration)
        elif "unit" in item.path.parts:
            item.add_marker(pytest.mark.unit)
        if "integration" in item.keywords:
            item.add_marker(pytest.mark.timeout(5))
        elif "unit" in item.keywords:
            item.add_marker(pytest.mark.timeout(1))


@pytest.fixture
def make_png(tmp_path: Path):
    """Write a PNG from rows of RGB tuples and return its path."""

    def _make(name: str, rows: list[list[tuple[int, int, int]]]) -> Path:
        height = len(rows)
        width = len(rows[0])
        image = Image.new("RGB", (width, height))
        for y, row in enumerate(rows):
            for x, color in enumerate(row):
                image.putpixel((x, y), color)
        path = tmp_path / name
        image.save(path)
        return path

    return _make


@pytest.fixture(autouse=True)
def _propagate_blockmove_logs():
    """Keep blockmove records reachable by caplog even after setup_logging()."""
    logger = logging.getLogger("blockmove")
    yield
    logger.propagate = True
    logger.handlers.clear()
