"""Discord REST connector.

Decisions are embeds on messages in the decision channel; this module maps
those messages to records and back, pages channel history, and renders lane
outcomes (follow-up items, objection threads, new decisions).
Requires: pip install aiohttp
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

import aiohttp

from hazel.config import DiscordConfig
from hazel.connectors.base import DecisionDraft, FollowUpItem, ObjectionPost
from hazel.decisions.record import (
    AGENDA_TYPE,
    AUTHOR,
    BACKLOG_DESCRIPTION,
    BACKLOG_TITLE,
    CIRCLE,
    DecisionRecord,
    EmbedField,
)
from hazel.decisions.store import DEFAULT_PAGE_SIZE
from hazel.errors import RecordAccessError, RecordNotFound

logger = logging.getLogger(__name__)

API_BASE = "https://discord.com/api/v10"
DISCORD_EPOCH_MS = 1420070400000
THREAD_ARCHIVE_MINUTES = 10080  # 1 week
SAVE_DECISION_ID = "saveDecision"


class DiscordNotFound(RecordAccessError):
    """The requested Discord resource does not exist."""


def timestamp_to_snowflake(ts: datetime) -> str:
    """Smallest snowflake at ``ts``, usable as ``after``/``before`` cursor."""
    ms = int(ts.timestamp() * 1000)
    return str(max(ms - DISCORD_EPOCH_MS, 0) << 22)


def message_to_record(data: dict[str, Any]) -> DecisionRecord:
    """Map a Discord message object onto a record (first embed only)."""
    created_at = None
    if data.get("timestamp"):
        created_at = datetime.fromisoformat(data["timestamp"].replace("Z", "+00:00"))

    embeds = data.get("embeds") or []
    embed = embeds[0] if embeds else {}
    fields = [
        EmbedField(name=f.get("name", ""), value=f.get("value", ""), inline=bool(f.get("inline")))
        for f in embed.get("fields", [])
    ]
    return DecisionRecord(
        id=str(data["id"]),
        fields=fields,
        created_at=created_at,
        title=embed.get("title"),
        content=data.get("content", ""),
    )


def _api_fields(fields: list[EmbedField]) -> list[dict[str, Any]]:
    return [{"name": f.name, "value": f.value, "inline": f.inline} for f in fields]


class DiscordClient:
    """Thin async client for the handful of REST routes the bot needs."""

    def __init__(self, config: DiscordConfig, session: aiohttp.ClientSession | None = None) -> None:
        self._config = config
        self._session = session

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"Authorization": f"Bot {self._config.token}"}
            )
        return self._session

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        session = self._get_session()
        try:
            async with session.request(method, API_BASE + path, params=params, json=json) as resp:
                if resp.status == 404:
                    raise DiscordNotFound(f"{method} {path}: not found")
                if resp.status >= 400:
                    body = await resp.text()
                    raise RecordAccessError(f"{method} {path}: HTTP {resp.status} {body[:200]}")
                if resp.status == 204:
                    return None
                return await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise RecordAccessError(f"{method} {path}: {e}") from e

    # ── Messages ─────────────────────────────────────────────

    async def get_message(self, channel_id: str, message_id: str) -> dict[str, Any]:
        return await self.request("GET", f"/channels/{channel_id}/messages/{message_id}")

    async def list_messages(self, channel_id: str, **cursor: str | int) -> list[dict[str, Any]]:
        params = {k: str(v) for k, v in cursor.items() if v is not None}
        return await self.request("GET", f"/channels/{channel_id}/messages", params=params)

    async def edit_message(self, channel_id: str, message_id: str, payload: dict) -> dict[str, Any]:
        return await self.request(
            "PATCH", f"/channels/{channel_id}/messages/{message_id}", json=payload
        )

    async def send_message(self, channel_id: str, payload: dict) -> dict[str, Any]:
        return await self.request("POST", f"/channels/{channel_id}/messages", json=payload)

    async def start_thread(self, channel_id: str, message_id: str, name: str) -> dict[str, Any]:
        return await self.request(
            "POST",
            f"/channels/{channel_id}/messages/{message_id}/threads",
            json={"name": name, "auto_archive_duration": THREAD_ARCHIVE_MINUTES},
        )

    async def fetch_before(
        self, channel_id: str, before: str | None, limit: int = DEFAULT_PAGE_SIZE
    ) -> list[DecisionRecord]:
        """Channel history page, newest first."""
        batch = await self.list_messages(channel_id, limit=limit, before=before)
        return [message_to_record(m) for m in batch]

    async def fetch_message(self, channel_id: str, message_id: str) -> DecisionRecord:
        try:
            return message_to_record(await self.get_message(channel_id, message_id))
        except DiscordNotFound:
            raise RecordNotFound(message_id)

    async def delete_message(self, channel_id: str, message_id: str) -> None:
        await self.request("DELETE", f"/channels/{channel_id}/messages/{message_id}")

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()


class DiscordRecordStore:
    """Record accessor over the decision channel."""

    def __init__(self, client: DiscordClient, channel_id: str) -> None:
        self._client = client
        self.channel_id = channel_id

    async def get(self, record_id: str) -> DecisionRecord:
        try:
            data = await self._client.get_message(self.channel_id, record_id)
        except DiscordNotFound:
            raise RecordNotFound(record_id)
        return message_to_record(data)

    async def replace_fields(self, record_id: str, fields: list[EmbedField]) -> None:
        # Keep title, colour, timestamp etc. of the embed; swap only the fields
        try:
            data = await self._client.get_message(self.channel_id, record_id)
        except DiscordNotFound:
            raise RecordNotFound(record_id)
        embeds = data.get("embeds") or [{}]
        embed = dict(embeds[0])
        embed["fields"] = _api_fields(fields)
        try:
            await self._client.edit_message(
                self.channel_id, record_id, {"embeds": [embed, *embeds[1:]]}
            )
        except DiscordNotFound:
            raise RecordNotFound(record_id)

    async def scan_since(
        self, since: datetime, page_size: int = DEFAULT_PAGE_SIZE
    ) -> list[DecisionRecord]:
        after = timestamp_to_snowflake(since)
        messages: list[dict[str, Any]] = []
        while True:
            page = await self._client.list_messages(self.channel_id, limit=page_size, after=after)
            messages.extend(page)
            if len(page) < page_size:
                break
            after = str(max(int(m["id"]) for m in page))

        messages.sort(key=lambda m: int(m["id"]), reverse=True)
        logger.debug("Scanned %d messages in channel %s", len(messages), self.channel_id)
        return [message_to_record(m) for m in messages]


# ── Rendering ────────────────────────────────────────────────

# Clicking the button turns the backlog item into a decision (Hazel.save_backlog_item)
_SAVE_BUTTON_ROW = {
    "type": 1,
    "components": [
        {
            "type": 2,
            "style": 1,
            "custom_id": SAVE_DECISION_ID,
            "label": "Gem i beslutninger",
        }
    ],
}


def follow_up_payload(item: FollowUpItem) -> dict[str, Any]:
    return {
        "embeds": [
            {
                "title": "Opfølgningspunkt til husmøde",
                "color": item.color,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "footer": {"text": "Automatisk opfølgning på beslutning"},
                "fields": [
                    {"name": CIRCLE, "value": item.circle, "inline": True},
                    {"name": AUTHOR, "value": item.author or "–", "inline": True},
                    {"name": AGENDA_TYPE, "value": item.agenda_type, "inline": True},
                    {"name": BACKLOG_TITLE, "value": item.title, "inline": False},
                    {"name": BACKLOG_DESCRIPTION, "value": item.description, "inline": False},
                    {"name": "Sidste udfald", "value": item.last_outcome, "inline": False},
                ],
            }
        ],
        "components": [_SAVE_BUTTON_ROW],
    }


def backlog_item_payload(draft: DecisionDraft) -> dict[str, Any]:
    payload = decision_payload(draft)
    payload["components"] = [_SAVE_BUTTON_ROW]
    return payload


def objection_payload(post: ObjectionPost) -> dict[str, Any]:
    now = datetime.now(timezone.utc)
    return {
        "embeds": [
            {
                "title": "Kommentar fra Hasselmusen",
                "color": 0xFF0000,
                "description": f"Hasselmusen har en kommentar: {post.title}",
                "timestamp": now.isoformat(),
                "footer": {"text": f"Raised by AI at {now.isoformat()}"},
                "fields": [
                    {"name": "Kommentar", "value": post.suggested_revision[:1024], "inline": False},
                    {"name": "Beslutnings ID", "value": post.record_id, "inline": True},
                    {"name": CIRCLE, "value": post.circle, "inline": True},
                ],
            }
        ]
    }


def decision_payload(draft: DecisionDraft) -> dict[str, Any]:
    return {
        "embeds": [
            {
                "title": draft.title,
                "color": draft.color,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "fields": _api_fields(draft.fields),
            }
        ]
    }


class DiscordPresenter:
    """Posts lane outcomes to Discord."""

    def __init__(self, client: DiscordClient, decision_channel_id: str) -> None:
        self._client = client
        self._decision_channel_id = decision_channel_id

    async def post_follow_up(self, channel_id: str, item: FollowUpItem) -> None:
        await self._client.send_message(channel_id, follow_up_payload(item))

    async def post_objection(self, record: DecisionRecord, post: ObjectionPost) -> None:
        thread = await self._client.start_thread(
            self._decision_channel_id, record.id, post.thread_name
        )
        await self._client.send_message(str(thread["id"]), objection_payload(post))

    async def publish_decision(self, channel_id: str, draft: DecisionDraft) -> str:
        message = await self._client.send_message(channel_id, decision_payload(draft))
        return str(message["id"])

    async def post_backlog_item(self, channel_id: str, draft: DecisionDraft) -> str:
        message = await self._client.send_message(channel_id, backlog_item_payload(draft))
        return str(message["id"])
