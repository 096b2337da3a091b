"""Exception hierarchy shared by the engine, ports and connectors."""

from __future__ import annotations


class HazelError(Exception):
    """Base class for all Hazel errors."""


class RecordAccessError(HazelError):
    """Reading or writing a decision record through the accessor failed."""


class RecordNotFound(RecordAccessError):
    """The record no longer exists upstream."""

    def __init__(self, record_id: str) -> None:
        super().__init__(f"Record {record_id} not found")
        self.record_id = record_id


class ControlBlockError(HazelError):
    """The embedded meta_data block could not be parsed."""


class TransformError(HazelError):
    """The text transform port failed or returned something unusable."""


class NoActiveMeeting(HazelError):
    """An outcome was recorded for a circle without a live meeting."""

    def __init__(self, circle: str) -> None:
        super().__init__(f"No meeting in progress for circle '{circle}'")
        self.circle = circle


class UnknownCircle(HazelError):
    """The circle name is not present in the routing table."""

    def __init__(self, circle: str) -> None:
        super().__init__(f"Unknown circle '{circle}'")
        self.circle = circle


class NotAWriter(HazelError):
    """The member holds none of the circle's writer roles."""

    def __init__(self, circle: str) -> None:
        super().__init__(f"No write access to circle '{circle}'")
        self.circle = circle
