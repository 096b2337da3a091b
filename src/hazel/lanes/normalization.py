"""Normalization lane — typo fixing and date resolution for opted-in decisions.

Every pending record gets exactly one terminal outcome per tick. A failing
transform marks the record done with the error flag set instead of retrying,
so a permanently bad input cannot be reprocessed forever. Only accessor
failures leave a record pending for the next tick.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from hazel.decisions.control_block import (
    ControlBlock,
    parse_date,
    utcnow,
    with_control_block,
)
from hazel.decisions.record import NEXT_ACTION_DATE, DecisionRecord, EmbedField, same_content
from hazel.decisions.store import RecordAccessor
from hazel.engines.base import NormalizedResult, TextTransform
from hazel.errors import ControlBlockError, RecordAccessError
from hazel.lanes.scan import Clock, scan_decisions, window_start

logger = logging.getLogger(__name__)


def _keep_layout(normalized: list[EmbedField], original: list[EmbedField]) -> list[EmbedField]:
    inline = {f.name: f.inline for f in original}
    return [EmbedField(f.name, f.value, inline.get(f.name, False)) for f in normalized]


def _append_changes(existing: str | None, new: str | None) -> str | None:
    if not new:
        return existing
    return f"{existing}\n{new}" if existing else new


class NormalizationLane:
    """Scans the window for ``post_process`` decisions and normalizes them."""

    name = "normalization"

    def __init__(
        self,
        accessor: RecordAccessor,
        transform: TextTransform,
        history_window: timedelta,
        clock: Clock = utcnow,
    ) -> None:
        self._accessor = accessor
        self._transform = transform
        self._history_window = history_window
        self._clock = clock

    async def tick(self) -> int:
        """Process every pending record once. Returns how many were written."""
        since = window_start(self._clock, self._history_window)
        pending = await scan_decisions(
            self._accessor, since, lambda b: b.needs_normalization
        )
        logger.info("Found %d decisions pending normalization", len(pending))

        written = 0
        for record, block in pending:
            if await self.process(record, block):
                written += 1
        return written

    async def process(self, record: DecisionRecord, block: ControlBlock) -> bool:
        content = record.content_fields()

        result: NormalizedResult | None
        try:
            result = await self._transform.normalize(content)
        except Exception as e:
            logger.error("Normalization failed for decision %s: %s", record.id, e)
            result = None

        now = self._clock()
        block.post_processed_time = now

        if result is None or result.error or not result.fields:
            block.post_processed_error = True
            fields = with_control_block(record.fields, block)
            outcome = "error"
        elif not same_content(result.fields, content):
            block.post_processed_error = False
            block.post_process_changes = _append_changes(
                block.post_process_changes, result.change_description
            )
            self._carry_next_action_date(record, result.fields, block)
            fields = with_control_block(_keep_layout(result.fields, content), block)
            outcome = "changed"
        else:
            block.post_processed_error = False
            fields = with_control_block(record.fields, block)
            outcome = "unchanged"

        try:
            await self._accessor.replace_fields(record.id, fields)
        except RecordAccessError as e:
            logger.error("Failed to write normalization result for %s: %s", record.id, e)
            return False

        logger.info("Normalized decision %s (%s)", record.id, outcome)
        return True

    @staticmethod
    def _carry_next_action_date(
        record: DecisionRecord, fields: list[EmbedField], block: ControlBlock
    ) -> None:
        """Re-arm the follow-up lane when normalization yields a follow-up date."""
        for f in fields:
            if f.name != NEXT_ACTION_DATE:
                continue
            try:
                next_date = parse_date(f.value)
            except ControlBlockError:
                logger.warning(
                    "Decision %s: normalized follow-up date %r is not a date", record.id, f.value
                )
                return
            if next_date is not None:
                block.next_action_date = next_date
                block.next_action_date_handled = False
            return
