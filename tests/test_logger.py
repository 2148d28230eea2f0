from __future__ import annotations

import logging

import pytest

from github_snapshot.logger import configure_logging, get_logger


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def test_level_is_applied():
    configure_logging("warning")

    assert logging.getLogger().level == logging.WARNING


def test_debug_flag_wins():
    configure_logging("ERROR", debug=True)

    assert logging.getLogger().level == logging.DEBUG
    assert logging.getLogger("urllib3").level == logging.WARNING


def test_unknown_level_falls_back_to_info():
    configure_logging("chatty")

    assert logging.getLogger().level == logging.INFO


def test_get_logger_returns_named_logger():
    assert get_logger("github_snapshot.cli").name == "github_snapshot.cli"
