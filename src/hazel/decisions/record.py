"""Decision records: a chat message viewed as an ordered set of named fields."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

META_FIELD = "meta_data"

# Field labels as they appear on decision embeds
CIRCLE = "Cirkel"
AUTHOR = "Forfatter"
AGENDA_TYPE = "Agenda type"
ORIGINAL_TITLE = "Original Overskrift"
ORIGINAL_DESCRIPTION = "Original Beskrivelse"
OUTCOME = "Udfald"
PARTICIPANTS = "Deltagere"
NEXT_ACTION_DATE = "Opfølgningsdato"
NEXT_ACTION_RESPONSIBLE = "Ansvarlig"

# Field labels on backlog items (new agenda points and follow-ups)
BACKLOG_TITLE = "Overskrift"
BACKLOG_DESCRIPTION = "Beskrivelse"


@dataclass
class EmbedField:
    """One named text field on a record."""

    name: str
    value: str
    inline: bool = False

    def pair(self) -> tuple[str, str]:
        return (self.name, self.value)


@dataclass
class DecisionRecord:
    """A message in a channel, with the fields of its first embed."""

    id: str
    fields: list[EmbedField] = field(default_factory=list)
    created_at: datetime | None = None
    title: str | None = None
    content: str = ""

    def field_value(self, name: str, default: str | None = None) -> str | None:
        for f in self.fields:
            if f.name == name:
                return f.value
        return default

    @property
    def meta_field(self) -> EmbedField | None:
        for f in self.fields:
            if f.name == META_FIELD:
                return f
        return None

    @property
    def is_decision(self) -> bool:
        return self.meta_field is not None

    def content_fields(self) -> list[EmbedField]:
        """All fields except the control block, in order."""
        return [f for f in self.fields if f.name != META_FIELD]


def same_content(a: list[EmbedField], b: list[EmbedField]) -> bool:
    """Structural equality on (name, value) pairs, ignoring layout flags."""
    return [f.pair() for f in a] == [f.pair() for f in b]
