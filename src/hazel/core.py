"""Hazel orchestrator — owns the engine state and wires the lanes together.

Responsibilities:
1. Hold the per-instance state: meeting sessions and the follow-up queue
2. Build the three lanes against the injected record accessor, transform and presenter
3. Gate outcome recording on a live meeting
4. Backlog items and archive questions
5. Small admin operations on a decision's control block
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from hazel.config import HazelConfig
from hazel.decisions.archive import ARCHIVE_SEPARATOR, DECISION_ARCHIVE_CHAR_BUDGET, ArchiveReader
from hazel.decisions.control_block import ControlBlock, read_control_block, utcnow, with_control_block
from hazel.decisions.outcome import BacklogItem, OutcomeForm, build_backlog_item, build_decision
from hazel.errors import ControlBlockError, NotAWriter, RecordAccessError, UnknownCircle
from hazel.lanes.alignment import AlignmentLane
from hazel.lanes.follow_up import FollowUpLane, FollowUpQueue, PendingFollowUp
from hazel.lanes.normalization import NormalizationLane
from hazel.lanes.scan import Clock
from hazel.meetings import MeetingSession, MeetingSessionStore

if TYPE_CHECKING:
    from hazel.connectors.base import Presenter
    from hazel.decisions.store import ChannelMessages, RecordAccessor
    from hazel.engines.base import TextTransform

logger = logging.getLogger(__name__)


class Hazel:
    """Decision lifecycle engine for one running bot instance."""

    def __init__(
        self,
        config: HazelConfig,
        accessor: RecordAccessor,
        transform: TextTransform,
        presenter: Presenter,
        history: ChannelMessages,
        clock: Clock = utcnow,
    ) -> None:
        self.config = config
        self.accessor = accessor
        self.presenter = presenter
        self.transform = transform
        self._history = history
        self._clock = clock

        sched = config.scheduler
        window = timedelta(seconds=sched.history_window)

        self.meetings = MeetingSessionStore(
            default_ttl=timedelta(seconds=sched.meeting_duration), clock=clock
        )
        self.follow_up_queue = FollowUpQueue()

        self.normalization = NormalizationLane(accessor, transform, window, clock=clock)
        self.alignment = AlignmentLane(
            accessor,
            transform,
            ArchiveReader(history),
            presenter,
            vision_channel_id=config.discord.vision_channel_id,
            handbook_channel_id=config.discord.handbook_channel_id,
            history_window=window,
            clock=clock,
        )
        self.follow_up = FollowUpLane(
            accessor,
            presenter,
            self.follow_up_queue,
            window,
            lead_time=timedelta(seconds=sched.follow_up_lead_time),
            circle_color=config.circle_color,
            clock=clock,
        )

    # ── Meetings ─────────────────────────────────────────────

    def start_meeting(self, circle: str, participants: Iterable[str]) -> MeetingSession:
        """Start (or re-pick participants of) a circle's meeting."""
        if circle not in self.config.circles:
            raise UnknownCircle(circle)
        return self.meetings.set(circle, participants)

    async def record_outcome(
        self,
        circle: str,
        form: OutcomeForm,
        author_id: str,
        backlog_item: BacklogItem | None = None,
    ) -> str:
        """Publish a decision for a backlog item. Requires a live meeting.

        Raises NoActiveMeeting so the caller can prompt for a meeting start.
        """
        circle_cfg = self.config.circles.get(circle)
        if circle_cfg is None:
            raise UnknownCircle(circle)
        session = self.meetings.require(circle)

        draft = build_decision(circle_cfg, session, form, author_id, backlog_item or BacklogItem())
        record_id = await self.presenter.publish_decision(
            self.config.discord.decision_channel_id, draft
        )
        logger.info("Recorded decision %s for circle %s", record_id, circle)
        return record_id

    # ── Backlog ──────────────────────────────────────────────

    async def submit_backlog_item(
        self,
        circle: str,
        agenda_type: str,
        title: str,
        description: str,
        author_id: str,
        member_role_ids: Iterable[str],
    ) -> str:
        """Post a new agenda point to a circle's backlog channel.

        The member needs one of the circle's writer roles; a circle with no
        writer roles accepts nobody. Raises ValueError on bad lengths.
        """
        circle_cfg = self.config.circles.get(circle)
        if circle_cfg is None:
            raise UnknownCircle(circle)
        if not set(member_role_ids) & set(circle_cfg.writer_role_ids):
            raise NotAWriter(circle)

        draft = build_backlog_item(circle_cfg, agenda_type, title, description, author_id)
        message_id = await self.presenter.post_backlog_item(circle_cfg.backlog_channel_id, draft)
        logger.info("Posted backlog item %s for circle %s", message_id, circle)
        return message_id

    async def save_backlog_item(
        self,
        backlog_channel_id: str,
        message_id: str,
        form: OutcomeForm,
        author_id: str,
    ) -> str:
        """Turn a backlog message into a decision, then remove it from the backlog."""
        circle = self.config.circle_for_backlog_channel(backlog_channel_id)
        if circle is None:
            raise UnknownCircle(backlog_channel_id)
        self.meetings.require(circle)

        try:
            item = BacklogItem.from_record(
                await self._history.fetch_message(backlog_channel_id, message_id)
            )
        except RecordAccessError as e:
            logger.warning("Could not read backlog item %s: %s", message_id, e)
            item = BacklogItem()

        record_id = await self.record_outcome(circle, form, author_id, item)

        try:
            await self._history.delete_message(backlog_channel_id, message_id)
        except RecordAccessError as e:
            logger.warning("Could not delete backlog item %s: %s", message_id, e)
        return record_id

    # ── Questions ────────────────────────────────────────────

    async def ask_decisions(self, question: str) -> str | None:
        """Answer from the recent decision archive; None when it is empty."""
        reader = ArchiveReader(self._history, char_budget=DECISION_ARCHIVE_CHAR_BUDGET)
        archive = await reader.read(self.config.discord.decision_channel_id)
        if not archive:
            return None
        return await self.transform.answer("decisions", archive, question)

    async def ask_handbook(self, question: str) -> str | None:
        """Answer from the vision and handbook archives; None when both are empty."""
        reader = ArchiveReader(self._history)
        texts = await reader.read_texts(self.config.discord.vision_channel_id)
        texts += await reader.read_texts(self.config.discord.handbook_channel_id)
        if not texts:
            return None
        return await self.transform.answer("handbook", ARCHIVE_SEPARATOR.join(texts), question)

    # ── Admin ────────────────────────────────────────────────

    async def set_control_field(self, record_id: str, key: str, value: Any) -> ControlBlock:
        """Overwrite one meta_data key on a decision (read, change, replace-all)."""
        record = await self.accessor.get(record_id)
        block = read_control_block(record)
        if block is None:
            raise ControlBlockError(f"Decision {record_id} has no meta_data field")

        data = block.to_dict()
        data[key] = value
        # admin input must be valid even where a stored value is tolerated
        updated = ControlBlock.from_dict(data, strict=key == "next_action_date")
        await self.accessor.replace_fields(record_id, with_control_block(record.fields, updated))
        logger.info("Updated meta_data key %s on decision %s", key, record_id)
        return updated

    async def pending_follow_ups(self) -> list[PendingFollowUp]:
        return await self.follow_up.pending()
