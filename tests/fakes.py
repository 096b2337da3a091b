"""In-memory fakes for the record accessor, transform, presenter and channel history."""

from __future__ import annotations

import copy
from datetime import datetime, timedelta, timezone

from hazel.connectors.base import DecisionDraft, FollowUpItem, ObjectionPost
from hazel.decisions.control_block import ControlBlock, read_control_block
from hazel.decisions.record import (
    CIRCLE,
    ORIGINAL_DESCRIPTION,
    ORIGINAL_TITLE,
    OUTCOME,
    DecisionRecord,
    EmbedField,
)
from hazel.engines.base import AlignmentResult, NormalizedResult
from hazel.errors import RecordNotFound

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def make_fields(title: str = "Fælles indkøb", outcome: str = "Vi køber ind sammen") -> list[EmbedField]:
    return [
        EmbedField(CIRCLE, "economy", inline=True),
        EmbedField(ORIGINAL_TITLE, title),
        EmbedField(ORIGINAL_DESCRIPTION, "Skal vi dele indkøb?"),
        EmbedField(OUTCOME, outcome),
    ]


def make_decision(
    record_id: str,
    block: ControlBlock | None,
    fields: list[EmbedField] | None = None,
    created_at: datetime = NOW - timedelta(hours=1),
) -> DecisionRecord:
    fields = list(fields if fields is not None else make_fields())
    if block is not None:
        fields.append(block.to_field())
    return DecisionRecord(id=record_id, fields=fields, created_at=created_at)


class FakeRecordStore:
    """In-memory RecordAccessor. Stores deep copies so tests see real writes."""

    def __init__(self):
        self.records: dict[str, DecisionRecord] = {}
        self.replace_calls: list[tuple[str, list[EmbedField]]] = []
        self.fail_get: Exception | None = None
        self.fail_replace: Exception | None = None
        self.fail_scan: Exception | None = None

    def add(self, record: DecisionRecord) -> DecisionRecord:
        self.records[record.id] = copy.deepcopy(record)
        return record

    def block(self, record_id: str) -> ControlBlock | None:
        return read_control_block(self.records[record_id])

    async def get(self, record_id: str) -> DecisionRecord:
        if self.fail_get is not None:
            raise self.fail_get
        if record_id not in self.records:
            raise RecordNotFound(record_id)
        return copy.deepcopy(self.records[record_id])

    async def replace_fields(self, record_id: str, fields: list[EmbedField]) -> None:
        if self.fail_replace is not None:
            raise self.fail_replace
        if record_id not in self.records:
            raise RecordNotFound(record_id)
        self.replace_calls.append((record_id, copy.deepcopy(fields)))
        self.records[record_id].fields = copy.deepcopy(fields)

    async def scan_since(self, since: datetime, page_size: int = 100) -> list[DecisionRecord]:
        if self.fail_scan is not None:
            raise self.fail_scan
        found = [
            copy.deepcopy(r)
            for r in self.records.values()
            if r.created_at is None or r.created_at > since
        ]
        return sorted(found, key=lambda r: r.created_at or NOW, reverse=True)


class FakeTransform:
    """TextTransform with canned answers. An Exception instance is raised instead."""

    def __init__(
        self,
        normalized: NormalizedResult | Exception | None = None,
        alignment: AlignmentResult | Exception | None = None,
        answer: str | Exception = "Pip! Svaret står i arkivet.",
    ):
        self.normalized = normalized
        self.alignment = alignment
        self.answer_text = answer
        self.normalize_calls: list[list[EmbedField]] = []
        self.align_calls: list[tuple[list[EmbedField], str, str]] = []
        self.answer_calls: list[tuple[str, str, str]] = []

    @property
    def name(self) -> str:
        return "fake"

    async def normalize(self, fields: list[EmbedField]) -> NormalizedResult:
        self.normalize_calls.append(fields)
        if isinstance(self.normalized, Exception):
            raise self.normalized
        if self.normalized is None:
            return NormalizedResult(fields=list(fields), change_description="No changes made")
        return self.normalized

    async def align(self, fields: list[EmbedField], vision: str, handbook: str) -> AlignmentResult:
        self.align_calls.append((fields, vision, handbook))
        if isinstance(self.alignment, Exception):
            raise self.alignment
        return self.alignment or AlignmentResult()

    async def answer(self, topic: str, archive: str, question: str) -> str:
        self.answer_calls.append((topic, archive, question))
        if isinstance(self.answer_text, Exception):
            raise self.answer_text
        return self.answer_text


class RecordingPresenter:
    def __init__(self):
        self.follow_ups: list[tuple[str, FollowUpItem]] = []
        self.objections: list[tuple[DecisionRecord, ObjectionPost]] = []
        self.decisions: list[tuple[str, DecisionDraft]] = []
        self.backlog_items: list[tuple[str, DecisionDraft]] = []
        self.fail: Exception | None = None

    async def post_follow_up(self, channel_id: str, item: FollowUpItem) -> None:
        if self.fail is not None:
            raise self.fail
        self.follow_ups.append((channel_id, item))

    async def post_objection(self, record: DecisionRecord, post: ObjectionPost) -> None:
        if self.fail is not None:
            raise self.fail
        self.objections.append((record, post))

    async def publish_decision(self, channel_id: str, draft: DecisionDraft) -> str:
        if self.fail is not None:
            raise self.fail
        self.decisions.append((channel_id, draft))
        return f"msg-{len(self.decisions)}"

    async def post_backlog_item(self, channel_id: str, draft: DecisionDraft) -> str:
        if self.fail is not None:
            raise self.fail
        self.backlog_items.append((channel_id, draft))
        return f"backlog-{len(self.backlog_items)}"


class FakeHistory:
    """ChannelMessages over per-channel message lists kept newest first."""

    def __init__(self, channels: dict[str, list[DecisionRecord]] | None = None):
        self.channels = channels or {}
        self.calls: list[tuple[str, str | None, int]] = []
        self.deleted: list[tuple[str, str]] = []
        self.fail: Exception | None = None
        self.fail_fetch: Exception | None = None
        self.fail_delete: Exception | None = None

    async def fetch_before(self, channel_id: str, before: str | None, limit: int = 100):
        self.calls.append((channel_id, before, limit))
        if self.fail is not None:
            raise self.fail
        messages = self.channels.get(channel_id, [])
        start = 0
        if before is not None:
            start = next((i + 1 for i, m in enumerate(messages) if m.id == before), len(messages))
        return messages[start:start + limit]

    async def fetch_message(self, channel_id: str, message_id: str) -> DecisionRecord:
        if self.fail_fetch is not None:
            raise self.fail_fetch
        for message in self.channels.get(channel_id, []):
            if message.id == message_id:
                return copy.deepcopy(message)
        raise RecordNotFound(message_id)

    async def delete_message(self, channel_id: str, message_id: str) -> None:
        if self.fail_delete is not None:
            raise self.fail_delete
        self.deleted.append((channel_id, message_id))
        self.channels[channel_id] = [
            m for m in self.channels.get(channel_id, []) if m.id != message_id
        ]
