"""Follow-up lane — repost decisions to their backlog when the follow-up date nears.

Two phases on their own timers:

- enqueue: scan the window for decisions with an unhandled follow-up date and
  remember them in the in-memory queue (never touches the record);
- drain: walk the queue, and for each due entry mark the record handled
  *before* posting the follow-up item. A crash between the two steps loses a
  follow-up; it never produces a duplicate post.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone

from hazel.connectors.base import FollowUpItem, Presenter
from hazel.decisions.control_block import ControlBlock, read_control_block, utcnow, with_control_block
from hazel.decisions.record import (
    AGENDA_TYPE,
    AUTHOR,
    CIRCLE,
    NEXT_ACTION_RESPONSIBLE,
    ORIGINAL_DESCRIPTION,
    ORIGINAL_TITLE,
    OUTCOME,
    DecisionRecord,
)
from hazel.decisions.store import RecordAccessor
from hazel.errors import ControlBlockError, RecordAccessError, RecordNotFound
from hazel.lanes.scan import Clock, scan_decisions, window_start

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueueEntry:
    record_id: str
    backlog_channel_id: str


class FollowUpQueue:
    """Ordered, deduplicated (by record id) list of entries awaiting a due check."""

    def __init__(self) -> None:
        self._entries: list[QueueEntry] = []

    def add(self, entry: QueueEntry) -> bool:
        """Append unless an entry for the same record is queued. Returns True if added."""
        if entry.record_id in self:
            return False
        self._entries.append(entry)
        return True

    def remove_at(self, index: int) -> QueueEntry:
        return self._entries.pop(index)

    def __getitem__(self, index: int) -> QueueEntry:
        return self._entries[index]

    def __contains__(self, record_id: object) -> bool:
        return any(e.record_id == record_id for e in self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[QueueEntry]:
        return iter(list(self._entries))


@dataclass
class PendingFollowUp:
    """A row in the pending follow-up listing."""

    record_id: str
    title: str
    next_action_date: str
    responsible: str | None


def due_threshold(block: ControlBlock, lead_time: timedelta) -> datetime:
    """Midnight UTC of the follow-up date, minus the lead time."""
    due = datetime.combine(block.next_action_date, time.min, tzinfo=timezone.utc)
    return due - lead_time


class FollowUpLane:
    """Enqueue and drain steps of the follow-up workflow."""

    name = "follow_up"

    def __init__(
        self,
        accessor: RecordAccessor,
        presenter: Presenter,
        queue: FollowUpQueue,
        history_window: timedelta,
        lead_time: timedelta = timedelta(0),
        circle_color: Callable[[str], int] = lambda circle: 0x95A5A6,
        clock: Clock = utcnow,
    ) -> None:
        self._accessor = accessor
        self._presenter = presenter
        self.queue = queue
        self._history_window = history_window
        self._lead_time = lead_time
        self._circle_color = circle_color
        self._clock = clock

    # ── Enqueue ──────────────────────────────────────────────

    async def enqueue(self) -> int:
        """Queue decisions with an unhandled follow-up date. Returns how many were added."""
        since = window_start(self._clock, self._history_window)
        matches = await scan_decisions(self._accessor, since, lambda b: b.has_pending_follow_up)
        logger.info("Found %d decisions with an unhandled follow-up date", len(matches))

        added = 0
        for record, block in matches:
            if record.id in self.queue:
                logger.debug("Decision %s is already queued, skipping", record.id)
                continue
            if not block.backlog_channel_id:
                logger.warning("Decision %s has no backlog_channelId in meta_data, skipping", record.id)
                continue
            self.queue.add(QueueEntry(record.id, block.backlog_channel_id))
            logger.info("Queued decision %s for follow-up in %s", record.id, block.backlog_channel_id)
            added += 1
        return added

    # ── Drain ────────────────────────────────────────────────

    async def drain(self) -> int:
        """Act on due entries. Returns how many follow-ups were attempted."""
        logger.debug("Checking %d queued follow-ups", len(self.queue))
        attempted = 0
        # back to front so removal is safe mid-iteration
        for idx in range(len(self.queue) - 1, -1, -1):
            entry = self.queue[idx]
            keep, acted = await self._drain_entry(entry)
            if acted:
                attempted += 1
            if not keep:
                self.queue.remove_at(idx)
        return attempted

    async def _drain_entry(self, entry: QueueEntry) -> tuple[bool, bool]:
        """Returns (keep entry queued, follow-up attempted)."""
        try:
            record = await self._accessor.get(entry.record_id)
        except RecordNotFound:
            logger.warning("Could not fetch decision %s, dropping from queue", entry.record_id)
            return False, False
        except RecordAccessError as e:
            logger.error("Failed to fetch decision %s, retrying next tick: %s", entry.record_id, e)
            return True, False

        try:
            block = read_control_block(record)
        except ControlBlockError as e:
            logger.warning("Bad meta_data for decision %s, dropping: %s", record.id, e)
            return False, False

        if block is None or not block.has_pending_follow_up:
            logger.info("Decision %s has no pending follow-up, removing from queue", record.id)
            return False, False

        now = self._clock()
        threshold = due_threshold(block, self._lead_time)
        if now < threshold:
            logger.debug("Decision %s not due until %s", record.id, threshold.isoformat())
            return True, False

        # Mark before acting so a failure below can never cause a duplicate post
        block.next_action_date_handled = True
        try:
            await self._accessor.replace_fields(record.id, with_control_block(record.fields, block))
        except RecordAccessError as e:
            logger.error("Failed to mark decision %s handled, not posting: %s", record.id, e)
            return False, False
        logger.info("Marked next_action_date_handled=true for %s", record.id)

        try:
            await self._presenter.post_follow_up(entry.backlog_channel_id, self._follow_up_item(record))
            logger.info("Posted follow-up for %s to %s", record.id, entry.backlog_channel_id)
        except Exception as e:
            logger.error("Failed to post follow-up for %s: %s", record.id, e)
        return False, True

    def _follow_up_item(self, record: DecisionRecord) -> FollowUpItem:
        circle = record.field_value(CIRCLE) or "–"
        return FollowUpItem(
            record_id=record.id,
            circle=circle,
            author=record.field_value(AUTHOR) or "",
            agenda_type=record.field_value(AGENDA_TYPE) or "beslutning",
            title=record.field_value(ORIGINAL_TITLE) or "–",
            description=record.field_value(ORIGINAL_DESCRIPTION) or "–",
            last_outcome=record.field_value(OUTCOME) or "–",
            color=self._circle_color(circle),
        )

    # ── Listing ──────────────────────────────────────────────

    async def pending(self) -> list[PendingFollowUp]:
        """Decisions in the window whose follow-up has not been handled yet."""
        since = window_start(self._clock, self._history_window)
        matches = await scan_decisions(self._accessor, since, lambda b: b.has_pending_follow_up)
        return [
            PendingFollowUp(
                record_id=record.id,
                title=record.field_value(ORIGINAL_TITLE) or "Uden titel",
                next_action_date=block.next_action_date.isoformat(),
                responsible=record.field_value(NEXT_ACTION_RESPONSIBLE),
            )
            for record, block in matches
        ]
