from __future__ import annotations
import logging
from typing import Iterator

import pytest

from vhcwallet.logs import logs, SUBSYSTEMS


@pytest.fixture(autouse=True)
def restore_levels() -> Iterator[None]:
    root_level = logs.root.level
    subsystem_levels = { name: logs.get_logger(name).level for name in SUBSYSTEMS }
    yield
    logs.root.setLevel(root_level)
    for name, level in subsystem_levels.items():
        logs.get_logger(name).setLevel(level)


def test_set_levels_single_level() -> None:
    logs.set_levels("debug")
    assert logs.root.level == logging.DEBUG


def test_set_levels_subsystems() -> None:
    logs.set_levels("warning, ticketbuyer=debug,signing=error")
    assert logs.root.level == logging.WARNING
    assert logs.get_logger("ticketbuyer").level == logging.DEBUG
    assert logs.get_logger("signing").level == logging.ERROR


@pytest.mark.parametrize("text,message", (
    ("nosuchlevel", "unknown logging level 'nosuchlevel'"),
    ("wallet=debug", "unknown logging subsystem 'wallet'"),
    ("signing=loud", "unknown logging level 'loud'"),
))
def test_set_levels_invalid(text: str, message: str) -> None:
    with pytest.raises(ValueError) as exception_info:
        logs.set_levels(text)
    assert str(exception_info.value) == message
