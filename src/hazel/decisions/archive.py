"""Archive reader — bounded text snapshots of reference channels.

Used to hand the vision and handbook channels to the alignment call as
read-only context, and as the source text for archive questions.
"""

from __future__ import annotations

import logging

from hazel.decisions.record import META_FIELD, DecisionRecord
from hazel.decisions.store import DEFAULT_PAGE_SIZE, ChannelHistory

logger = logging.getLogger(__name__)

ARCHIVE_CHAR_BUDGET = 64_000
DECISION_ARCHIVE_CHAR_BUDGET = 12_000
ARCHIVE_SEPARATOR = "\n\n---\n\n"


def message_text(msg: DecisionRecord) -> str:
    """Flatten a message into archive text; the control block is never included."""
    if msg.fields or msg.title:
        parts: list[str] = []
        if msg.title:
            parts.append(f"**{msg.title}**")
        for f in msg.fields:
            if f.name.lower() != META_FIELD:
                parts.append(f"{f.name}: {f.value}")
        return "\n".join(parts)
    return msg.content


class ArchiveReader:
    """Pages backward through a channel until the character budget is used."""

    def __init__(
        self,
        history: ChannelHistory,
        char_budget: int = ARCHIVE_CHAR_BUDGET,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self._history = history
        self.char_budget = char_budget
        self.page_size = page_size

    async def read_texts(self, channel_id: str) -> list[str]:
        """Message texts, oldest first within each page, pages newest first."""
        texts: list[str] = []
        used = 0
        before: str | None = None

        while used < self.char_budget:
            batch = await self._history.fetch_before(channel_id, before, self.page_size)
            if not batch:
                break

            for msg in sorted(batch, key=_created_key):
                text = message_text(msg)
                if text:
                    texts.append(text)
                    used += len(text) + 1

            # batch is newest first; continue from its oldest message
            before = batch[-1].id
            if len(batch) < self.page_size:
                break

        logger.debug("Read %d messages (%d chars) from channel %s", len(texts), used, channel_id)
        return texts

    async def read(self, channel_id: str) -> str:
        return ARCHIVE_SEPARATOR.join(await self.read_texts(channel_id))


def _created_key(msg: DecisionRecord):
    return (msg.created_at is None, msg.created_at or 0, msg.id)
