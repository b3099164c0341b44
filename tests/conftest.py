from __future__ import annotations

import logging
from pathlib import Path

import pytest

from lazydefs import runtime
from tests._fixtures.tree_builder import TreeBuilder


@pytest.fixture
def tree(tmp_path: Path) -> TreeBuilder:
    """Provide a reusable project builder rooted at the pytest tmp_path."""
    return TreeBuilder(tmp_path)


@pytest.fixture(autouse=True)
def reset_runtime_state():
    """Keep runtime registries and CLI logging setup from leaking between tests."""
    yield
    runtime.apply_snapshot([], {}, [])
    runtime._COMPONENTS.clear()
    runtime._LOADED.clear()
    logger = logging.getLogger("lazydefs")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
