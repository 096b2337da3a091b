"""The control block embedded in every decision record.

Stored as JSON in the ``meta_data`` field. The three lanes (normalization,
alignment, follow-up) are independent sub-states of the same block; a record
can be pending in any combination of them. Keys keep the names the bot has
always written so existing decisions stay readable, and unknown keys survive a
round-trip untouched.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any

from hazel.decisions.record import META_FIELD, DecisionRecord, EmbedField
from hazel.errors import ControlBlockError

logger = logging.getLogger(__name__)

_KNOWN_KEYS = {
    "post_process",
    "post_processed_time",
    "post_processed_error",
    "post_process_changes",
    "post_alignment",
    "post_alignment_time",
    "post_alignment_error",
    "next_action_date",
    "next_action_date_handled",
    "backlog_channelId",
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def _as_optional_bool(value: Any) -> bool | None:
    if value is None or value == "":
        return None
    return _as_bool(value)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp; empty means absent."""
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ControlBlockError(f"Invalid timestamp: {value!r}")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        ts = datetime.fromisoformat(text)
    except ValueError as e:
        raise ControlBlockError(f"Invalid timestamp: {value!r}") from e
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def parse_date(value: Any) -> date | None:
    """Parse YYYY-MM-DD (a trailing time part is ignored); empty means absent."""
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ControlBlockError(f"Invalid date: {value!r}")
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError as e:
        raise ControlBlockError(f"Invalid date: {value!r}") from e


def _format_timestamp(ts: datetime | None) -> str | None:
    if ts is None:
        return None
    return ts.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class ControlBlock:
    """Per-record lane state."""

    backlog_channel_id: str = ""

    post_process: bool = False
    post_processed_time: datetime | None = None
    post_processed_error: bool = False
    post_process_changes: str | None = None

    post_alignment: bool = False
    post_alignment_time: datetime | None = None
    post_alignment_error: bool = False

    next_action_date: date | None = None
    next_action_date_handled: bool | None = None

    extra: dict[str, Any] = field(default_factory=dict)

    # ── Lane predicates ──────────────────────────────────────

    @property
    def needs_normalization(self) -> bool:
        return self.post_process and self.post_processed_time is None

    @property
    def needs_alignment(self) -> bool:
        return self.post_alignment

    @property
    def has_pending_follow_up(self) -> bool:
        return self.next_action_date is not None and not self.next_action_date_handled

    # ── Serialization ────────────────────────────────────────

    @classmethod
    def from_dict(cls, data: dict[str, Any], strict: bool = False) -> ControlBlock:
        """Build a block from decoded ``meta_data``.

        An unreadable ``next_action_date`` only disables the follow-up lane:
        it is logged and kept verbatim in ``extra`` so it is written back
        unchanged. With ``strict`` it raises ControlBlockError instead.
        """
        extra = {k: v for k, v in data.items() if k not in _KNOWN_KEYS}
        try:
            next_action_date = parse_date(data.get("next_action_date"))
        except ControlBlockError:
            if strict:
                raise
            logger.warning("Ignoring unreadable next_action_date %r", data.get("next_action_date"))
            next_action_date = None
            extra["next_action_date"] = data["next_action_date"]

        return cls(
            backlog_channel_id=str(data.get("backlog_channelId") or ""),
            post_process=_as_bool(data.get("post_process", False)),
            post_processed_time=parse_timestamp(data.get("post_processed_time")),
            post_processed_error=_as_bool(data.get("post_processed_error", False)),
            post_process_changes=data.get("post_process_changes") or None,
            post_alignment=_as_bool(data.get("post_alignment", False)),
            post_alignment_time=parse_timestamp(data.get("post_alignment_time")),
            post_alignment_error=_as_bool(data.get("post_alignment_error", False)),
            next_action_date=next_action_date,
            next_action_date_handled=_as_optional_bool(data.get("next_action_date_handled")),
            extra=extra,
        )

    @classmethod
    def from_json(cls, raw: str) -> ControlBlock:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ControlBlockError(f"Invalid JSON in {META_FIELD}: {e}") from e
        if not isinstance(data, dict):
            raise ControlBlockError(f"{META_FIELD} is not a JSON object")
        return cls.from_dict(data)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "post_process": self.post_process,
            "post_processed_error": self.post_processed_error,
            "backlog_channelId": self.backlog_channel_id,
            "post_alignment": self.post_alignment,
            "post_alignment_error": self.post_alignment_error,
        }
        optional = {
            "post_processed_time": _format_timestamp(self.post_processed_time),
            "post_process_changes": self.post_process_changes,
            "post_alignment_time": _format_timestamp(self.post_alignment_time),
            "next_action_date": self.next_action_date.isoformat() if self.next_action_date else None,
            "next_action_date_handled": self.next_action_date_handled,
        }
        data.update({k: v for k, v in optional.items() if v is not None})
        # a parsed value always wins over a raw one kept in extra
        data.update({k: v for k, v in self.extra.items() if k not in data})
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    def to_field(self) -> EmbedField:
        return EmbedField(name=META_FIELD, value=self.to_json(), inline=False)


def read_control_block(record: DecisionRecord) -> ControlBlock | None:
    """Return the record's control block, or None if it is not a decision.

    Raises ControlBlockError when the block exists but cannot be parsed.
    """
    meta = record.meta_field
    if meta is None:
        return None
    return ControlBlock.from_json(meta.value)


def with_control_block(fields: list[EmbedField], block: ControlBlock) -> list[EmbedField]:
    """Return ``fields`` with the control block replaced (or appended)."""
    result: list[EmbedField] = []
    placed = False
    for f in fields:
        if f.name == META_FIELD:
            if not placed:
                result.append(block.to_field())
                placed = True
            continue
        result.append(f)
    if not placed:
        result.append(block.to_field())
    return result
