"""Daemon process — always-on mode for production.

Usage: python -m hazel serve

Manages:
- Discord REST client lifecycle
- Scheduler (normalization, alignment, follow-up lanes)
- PID file (a single running instance is assumed)
- Graceful shutdown (SIGTERM/SIGINT)
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys

from hazel.config import HazelConfig, load_config
from hazel.connectors.discord import DiscordClient, DiscordPresenter, DiscordRecordStore
from hazel.core import Hazel
from hazel.engines.anthropic_api import AnthropicTransformEngine
from hazel.scheduler.jobs import Scheduler

logger = logging.getLogger(__name__)


class HazelDaemon:
    """Always-on daemon process."""

    def __init__(self, config: HazelConfig | None = None) -> None:
        self.config = config or load_config()
        self._shutdown_event = asyncio.Event()
        self._client: DiscordClient | None = None

    # ── PID file management ──────────────────────────────────

    def _write_pid(self) -> None:
        self.config.pid_file.parent.mkdir(parents=True, exist_ok=True)
        self.config.pid_file.write_text(str(os.getpid()))
        logger.info("PID file written: %s (pid=%d)", self.config.pid_file, os.getpid())

    def _remove_pid(self) -> None:
        if self.config.pid_file.exists():
            self.config.pid_file.unlink()

    def _check_existing(self) -> None:
        if not self.config.pid_file.exists():
            return
        try:
            pid = int(self.config.pid_file.read_text().strip())
            os.kill(pid, 0)  # Check if process exists
            print(f"Hazel daemon already running (pid={pid}). Exiting.", file=sys.stderr)
            sys.exit(1)
        except (ProcessLookupError, ValueError):
            # Stale PID file
            self._remove_pid()

    # ── Signal handling ──────────────────────────────────────

    def _setup_signals(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._handle_signal, sig)

    def _handle_signal(self, sig: signal.Signals) -> None:
        logger.info("Received %s, shutting down...", sig.name)
        self._shutdown_event.set()

    # ── Build components ─────────────────────────────────────

    def _validate(self) -> None:
        missing = [
            name
            for name, value in [
                ("BOT_TOKEN", self.config.discord.token),
                ("DECISION_CHANNEL_ID", self.config.discord.decision_channel_id),
                ("VISION_CHANNEL_ID", self.config.discord.vision_channel_id),
                ("HANDBOOK_CHANNEL_ID", self.config.discord.handbook_channel_id),
            ]
            if not value
        ]
        if missing:
            raise ValueError(f"Missing configuration: {', '.join(missing)}")
        if not self.config.circles:
            logger.warning("No circles configured; follow-ups will use the default colour")

    def build_hazel(self) -> Hazel:
        self._validate()
        self._client = DiscordClient(self.config.discord)
        decision_channel = self.config.discord.decision_channel_id

        engine = AnthropicTransformEngine(
            model=self.config.engine.model,
            api_key=self.config.engine.api_key,
            max_tokens=self.config.engine.max_tokens,
            timeout=self.config.engine.timeout,
        )
        return Hazel(
            self.config,
            accessor=DiscordRecordStore(self._client, decision_channel),
            transform=engine,
            presenter=DiscordPresenter(self._client, decision_channel),
            history=self._client,
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()

    # ── Main run loop ────────────────────────────────────────

    async def run(self) -> None:
        self._check_existing()
        self._write_pid()
        self._setup_signals()

        hazel = self.build_hazel()
        scheduler = Scheduler(hazel, self.config)

        logger.info(
            "Hazel daemon starting (model=%s, circles=%s)",
            self.config.engine.model,
            ", ".join(self.config.circles) or "-",
        )

        try:
            await scheduler.start(self._shutdown_event)
        except asyncio.CancelledError:
            pass
        finally:
            await self.close()
            self._remove_pid()
            logger.info("Hazel daemon stopped.")
