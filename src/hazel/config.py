"""Configuration loading from environment variables and hazel.toml."""

from __future__ import annotations

import json
import os
import sys
from dataclasses import dataclass, field

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

_CONFIG_FILENAME = "hazel.toml"
_DEFAULT_COLOR = 0x95A5A6


@dataclass
class EngineConfig:
    """Configuration for the text transform engine."""

    model: str = "claude-sonnet-4-5"
    api_key: str | None = None
    max_tokens: int = 4096
    timeout: int = 120


@dataclass
class DiscordConfig:
    """Discord connector configuration."""

    token: str = ""
    decision_channel_id: str = ""
    vision_channel_id: str = ""
    handbook_channel_id: str = ""


@dataclass
class SchedulerConfig:
    """Lane intervals and time windows, all in seconds."""

    history_window: int = 604800
    normalize_interval: int = 60
    align_interval: int = 60
    follow_up_interval: int = 60
    follow_up_lead_time: int = 0
    meeting_duration: int = 10800


@dataclass
class CircleConfig:
    """Routing entry for one circle."""

    name: str
    backlog_channel_id: str
    writer_role_ids: list[str] = field(default_factory=list)
    embed_color: int = _DEFAULT_COLOR
    chat_channel_id: str = ""


@dataclass
class HazelConfig:
    """Top-level Hazel configuration."""

    engine: EngineConfig = field(default_factory=EngineConfig)
    discord: DiscordConfig = field(default_factory=DiscordConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    circles: dict[str, CircleConfig] = field(default_factory=dict)
    pid_file: Path = Path.home() / ".hazel" / "hazel.pid"
    log_level: str = "INFO"

    def circle_for_backlog_channel(self, channel_id: str) -> str | None:
        """Map a backlog channel id back to its circle name."""
        for name, circle in self.circles.items():
            if circle.backlog_channel_id == channel_id:
                return name
        return None

    def circle_color(self, name: str) -> int:
        circle = self.circles.get(name)
        return circle.embed_color if circle else _DEFAULT_COLOR


def parse_circles_env(raw: str, color_map: dict[str, int] | None = None) -> dict[str, CircleConfig]:
    """Parse CIRCLES="economy:111:555+556,main:222:557" into routing entries."""
    color_map = color_map or {}
    circles: dict[str, CircleConfig] = {}
    for entry in raw.split(","):
        if not entry.strip():
            continue
        parts = entry.split(":")
        if len(parts) != 3 or not all(p.strip() for p in parts):
            raise ValueError(
                f'Invalid CIRCLES entry "{entry}". Expected slug:channelId:roleId[+roleId...]'
            )
        slug, channel_id, roles = (p.strip() for p in parts)
        circles[slug] = CircleConfig(
            name=slug,
            backlog_channel_id=channel_id,
            writer_role_ids=[r.strip() for r in roles.split("+") if r.strip()],
            embed_color=int(color_map.get(slug, _DEFAULT_COLOR)),
        )
    return circles


def _circles_from_toml(data: dict) -> dict[str, CircleConfig]:
    circles: dict[str, CircleConfig] = {}
    for name, entry in data.items():
        circles[name] = CircleConfig(
            name=name,
            backlog_channel_id=str(entry.get("backlog_channel_id", "")),
            writer_role_ids=[str(r) for r in entry.get("writer_role_ids", [])],
            embed_color=int(entry.get("embed_color", _DEFAULT_COLOR)),
            chat_channel_id=str(entry.get("chat_channel_id", "")),
        )
    return circles


def _load_color_map() -> dict[str, int]:
    raw = os.getenv("COLOR_MAP")
    if not raw:
        return {}
    color_map = json.loads(raw)
    if not isinstance(color_map, dict):
        raise ValueError("Invalid COLOR_MAP format. Expected a JSON object of circle -> color.")
    return color_map


def load_config(config_path: Path | None = None) -> HazelConfig:
    """Load configuration from environment variables and optional hazel.toml.

    Priority: environment variables > hazel.toml > defaults.
    """
    file_data: dict = {}
    if config_path and config_path.exists():
        file_data = tomllib.loads(config_path.read_text())
    else:
        # Search current dir and ~/.hazel/
        for candidate in [Path.cwd() / _CONFIG_FILENAME, Path.home() / ".hazel" / _CONFIG_FILENAME]:
            if candidate.exists():
                file_data = tomllib.loads(candidate.read_text())
                break

    engine_data = file_data.get("engine", {})
    discord_data = file_data.get("discord", {})
    scheduler_data = file_data.get("scheduler", {})

    circles = _circles_from_toml(file_data.get("circles", {}))
    circles_env = os.getenv("CIRCLES")
    if circles_env:
        circles = parse_circles_env(circles_env, _load_color_map())

    def _seconds(env: str, key: str, default: int) -> int:
        return int(os.getenv(env, scheduler_data.get(key, default)))

    config = HazelConfig(
        engine=EngineConfig(
            model=os.getenv("HAZEL_MODEL", engine_data.get("model", "claude-sonnet-4-5")),
            api_key=os.getenv("ANTHROPIC_API_KEY", engine_data.get("api_key")),
            max_tokens=int(engine_data.get("max_tokens", 4096)),
            timeout=int(os.getenv("HAZEL_TIMEOUT", engine_data.get("timeout", 120))),
        ),
        discord=DiscordConfig(
            token=os.getenv("BOT_TOKEN", discord_data.get("token", "")),
            decision_channel_id=os.getenv(
                "DECISION_CHANNEL_ID", str(discord_data.get("decision_channel_id", ""))
            ),
            vision_channel_id=os.getenv(
                "VISION_CHANNEL_ID", str(discord_data.get("vision_channel_id", ""))
            ),
            handbook_channel_id=os.getenv(
                "HANDBOOK_CHANNEL_ID", str(discord_data.get("handbook_channel_id", ""))
            ),
        ),
        scheduler=SchedulerConfig(
            history_window=_seconds("MESSAGE_HISTORY_LIMIT_SEC", "history_window", 604800),
            normalize_interval=_seconds("POST_PROCESS_INTERVAL_SEC", "normalize_interval", 60),
            align_interval=_seconds("POST_ALIGNMENT_INTERVAL_SEC", "align_interval", 60),
            follow_up_interval=_seconds(
                "QUEUE_NEXT_ACTION_INTERVAL_SEC", "follow_up_interval", 60
            ),
            follow_up_lead_time=_seconds("FOLLOW_UP_LEAD_TIME_SEC", "follow_up_lead_time", 0),
            meeting_duration=_seconds("MEETING_DURATION_SEC", "meeting_duration", 10800),
        ),
        circles=circles,
        log_level=os.getenv("HAZEL_LOG_LEVEL", file_data.get("log_level", "INFO")),
    )
    if config.scheduler.meeting_duration <= 0:
        raise ValueError(f"Invalid meeting duration: {config.scheduler.meeting_duration}")
    return config
