"""Presentation protocol and the plain data handed to it."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from hazel.decisions.record import DecisionRecord, EmbedField


@dataclass
class FollowUpItem:
    """A follow-up agenda item reposted to a circle's backlog."""

    record_id: str
    circle: str
    author: str
    agenda_type: str
    title: str
    description: str
    last_outcome: str
    color: int


@dataclass
class ObjectionPost:
    """An alignment objection posted in a thread on the decision."""

    record_id: str
    thread_name: str
    title: str
    circle: str
    suggested_revision: str


@dataclass
class DecisionDraft:
    """A new decision ready to be published to the decision channel."""

    title: str
    color: int
    fields: list[EmbedField] = field(default_factory=list)


@runtime_checkable
class Presenter(Protocol):
    """Renders lane outcomes on the chat platform."""

    async def post_follow_up(self, channel_id: str, item: FollowUpItem) -> None:
        """Post a follow-up backlog item to the given backlog channel."""
        ...

    async def post_objection(self, record: DecisionRecord, post: ObjectionPost) -> None:
        """Open a discussion thread on the record and post the objection."""
        ...

    async def publish_decision(self, channel_id: str, draft: DecisionDraft) -> str:
        """Publish a decision, returning the new record id."""
        ...

    async def post_backlog_item(self, channel_id: str, draft: DecisionDraft) -> str:
        """Post a new agenda point to a backlog channel, returning its message id."""
        ...
