from __future__ import annotations

import logging

from src.utils import setup_logging


def test_setup_logging_is_idempotent() -> None:
    root = logging.getLogger()
    old_level = root.level
    try:
        setup_logging("INFO")
        n_handlers = len(root.handlers)
        setup_logging("DEBUG")

        assert len(root.handlers) == n_handlers
        assert root.level == logging.DEBUG
    finally:
        root.setLevel(old_level)
