"""Alignment lane — one-shot check of a decision against vision and handbook."""

from __future__ import annotations

import logging
from datetime import timedelta

from hazel.connectors.base import ObjectionPost, Presenter
from hazel.decisions.archive import ArchiveReader
from hazel.decisions.control_block import ControlBlock, utcnow, with_control_block
from hazel.decisions.record import CIRCLE, ORIGINAL_TITLE, DecisionRecord
from hazel.decisions.store import RecordAccessor
from hazel.engines.base import AlignmentResult, TextTransform
from hazel.errors import RecordAccessError
from hazel.lanes.scan import Clock, scan_decisions, window_start

logger = logging.getLogger(__name__)


class AlignmentLane:
    """Runs the alignment call once per opted-in decision.

    The flag is turned off after any outcome (objection, no objection or
    failure); only accessor failures leave it on for the next tick.
    """

    name = "alignment"

    def __init__(
        self,
        accessor: RecordAccessor,
        transform: TextTransform,
        archives: ArchiveReader,
        presenter: Presenter,
        vision_channel_id: str,
        handbook_channel_id: str,
        history_window: timedelta,
        clock: Clock = utcnow,
    ) -> None:
        self._accessor = accessor
        self._transform = transform
        self._archives = archives
        self._presenter = presenter
        self._vision_channel_id = vision_channel_id
        self._handbook_channel_id = handbook_channel_id
        self._history_window = history_window
        self._clock = clock

    async def tick(self) -> int:
        since = window_start(self._clock, self._history_window)
        pending = await scan_decisions(self._accessor, since, lambda b: b.needs_alignment)
        logger.info("Found %d decisions pending alignment", len(pending))
        if not pending:
            return 0

        # Archive read failures propagate: records stay pending for the next tick
        vision = await self._archives.read(self._vision_channel_id)
        handbook = await self._archives.read(self._handbook_channel_id)

        written = 0
        for record, block in pending:
            if await self.process(record, block, vision, handbook):
                written += 1
        return written

    async def process(
        self, record: DecisionRecord, block: ControlBlock, vision: str, handbook: str
    ) -> bool:
        failed = False
        result: AlignmentResult | None = None
        try:
            result = await self._transform.align(record.content_fields(), vision, handbook)
        except Exception as e:
            logger.error("Alignment failed for decision %s: %s", record.id, e)
            failed = True

        if result is not None and result.objection:
            try:
                await self._presenter.post_objection(record, self._objection_post(record, result))
                logger.info("Raised objection on decision %s", record.id)
            except Exception as e:
                logger.error("Failed to post objection for decision %s: %s", record.id, e)
                failed = True

        block.post_alignment = False
        block.post_alignment_time = self._clock()
        if failed:
            block.post_alignment_error = True

        try:
            await self._accessor.replace_fields(record.id, with_control_block(record.fields, block))
        except RecordAccessError as e:
            logger.error("Failed to write alignment result for %s: %s", record.id, e)
            return False

        logger.info("Aligned decision %s (error=%s)", record.id, failed)
        return True

    @staticmethod
    def _objection_post(record: DecisionRecord, result: AlignmentResult) -> ObjectionPost:
        title = record.field_value(ORIGINAL_TITLE) or ""
        return ObjectionPost(
            record_id=record.id,
            thread_name=f"Kommentar: {title}"[:100],
            title=title,
            circle=record.field_value(CIRCLE) or "Ukendt",
            suggested_revision=result.suggested_revision or "Ingen kommentar",
        )
