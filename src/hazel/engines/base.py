"""Text transform protocol and shared result types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from hazel.decisions.record import EmbedField


@dataclass
class NormalizedResult:
    """Output of a normalization call."""

    fields: list[EmbedField] = field(default_factory=list)
    change_description: str | None = None
    error: bool = False


@dataclass
class AlignmentResult:
    """Output of an alignment call."""

    objection: bool = False
    suggested_revision: str | None = None


@runtime_checkable
class TextTransform(Protocol):
    """Protocol that all transform engines must implement.

    Lane calls may raise (TransformError or a transport error) or return a
    result flagged as erroneous; callers treat either as a terminal failure.
    """

    @property
    def name(self) -> str: ...

    async def normalize(self, fields: list[EmbedField]) -> NormalizedResult:
        """Fix typos and resolve date expressions in a decision's fields."""
        ...

    async def align(
        self, fields: list[EmbedField], vision: str, handbook: str
    ) -> AlignmentResult:
        """Check a decision against the vision and handbook archives."""
        ...

    async def answer(self, topic: str, archive: str, question: str) -> str:
        """Answer a question from an archive. ``topic`` is "decisions" or "handbook"."""
        ...
