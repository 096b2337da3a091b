"""Window scan shared by every lane."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from hazel.decisions.control_block import ControlBlock, read_control_block
from hazel.decisions.record import DecisionRecord
from hazel.decisions.store import RecordAccessor
from hazel.errors import ControlBlockError

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


async def scan_decisions(
    accessor: RecordAccessor,
    since: datetime,
    predicate: Callable[[ControlBlock], bool],
) -> list[tuple[DecisionRecord, ControlBlock]]:
    """Decisions created after ``since`` whose control block matches, newest first.

    Records without a control block are not decisions and are ignored; records
    with a malformed block are logged and skipped for this tick.
    """
    matches: list[tuple[DecisionRecord, ControlBlock]] = []
    for record in await accessor.scan_since(since):
        try:
            block = read_control_block(record)
        except ControlBlockError as e:
            logger.warning("Skipping record %s with malformed meta_data: %s", record.id, e)
            continue
        if block is not None and predicate(block):
            matches.append((record, block))
    return matches


def window_start(clock: Clock, history_window: timedelta) -> datetime:
    return clock() - history_window
