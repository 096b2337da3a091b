"""Record accessor protocol — how the engine reads and writes decisions."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable

from hazel.decisions.record import DecisionRecord, EmbedField

DEFAULT_PAGE_SIZE = 100


@runtime_checkable
class RecordAccessor(Protocol):
    """Access to decision records in the decision channel.

    There is no partial update: callers read the full field set, change it and
    write the full set back. Writes are last-writer-wins.
    """

    async def get(self, record_id: str) -> DecisionRecord:
        """Fetch one record. Raises RecordNotFound."""
        ...

    async def replace_fields(self, record_id: str, fields: list[EmbedField]) -> None:
        """Replace every field of the record. Raises RecordAccessError."""
        ...

    async def scan_since(
        self, since: datetime, page_size: int = DEFAULT_PAGE_SIZE
    ) -> list[DecisionRecord]:
        """Records created after ``since``, newest first, across all pages."""
        ...


@runtime_checkable
class ChannelHistory(Protocol):
    """Backward paging through any channel's messages."""

    async def fetch_before(
        self, channel_id: str, before: str | None, limit: int = DEFAULT_PAGE_SIZE
    ) -> list[DecisionRecord]:
        """Up to ``limit`` messages older than ``before`` (or the newest), newest first."""
        ...


@runtime_checkable
class ChannelMessages(ChannelHistory, Protocol):
    """Single-message access to any channel, used for backlog items."""

    async def fetch_message(self, channel_id: str, message_id: str) -> DecisionRecord:
        """Fetch one message. Raises RecordNotFound or RecordAccessError."""
        ...

    async def delete_message(self, channel_id: str, message_id: str) -> None:
        """Delete one message. Raises RecordAccessError."""
        ...
