"""Entry point: python -m hazel [serve|queue]

- "serve": Daemon mode (production, lane scheduler against Discord)
- "queue": Print decisions with an unhandled follow-up date and exit
"""

from __future__ import annotations

import asyncio
import logging
import sys

from hazel.config import load_config


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _run_serve() -> None:
    """Daemon mode — lane scheduler."""
    config = load_config()
    _setup_logging(config.log_level)

    from hazel.daemon import HazelDaemon

    daemon = HazelDaemon(config)
    asyncio.run(daemon.run())


async def _print_queue(daemon) -> None:
    hazel = daemon.build_hazel()
    try:
        pending = await hazel.pending_follow_ups()
    finally:
        await daemon.close()

    if not pending:
        print("No decisions awaiting follow-up.")
        return
    for idx, item in enumerate(pending, start=1):
        resp = f" (Ansvarlig: {item.responsible})" if item.responsible else ""
        print(f"{idx}. {item.title} [{item.record_id}] – {item.next_action_date}{resp}")


def _run_queue() -> None:
    """List pending follow-ups in the history window."""
    config = load_config()
    _setup_logging(config.log_level)

    from hazel.daemon import HazelDaemon

    asyncio.run(_print_queue(HazelDaemon(config)))


def main() -> None:
    cmd = sys.argv[1] if len(sys.argv) > 1 else "serve"

    if cmd == "serve":
        _run_serve()
    elif cmd == "queue":
        _run_queue()
    else:
        print("Usage: python -m hazel [serve|queue]")
        print("  serve  — Daemon mode with the lane scheduler (default)")
        print("  queue  — List decisions awaiting follow-up")
        sys.exit(1)


if __name__ == "__main__":
    main()
