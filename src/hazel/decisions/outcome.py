"""Backlog items and meeting outcomes: the drafts published for a circle."""

from __future__ import annotations

import re
from dataclasses import dataclass

from hazel.config import CircleConfig
from hazel.connectors.base import DecisionDraft
from hazel.decisions.control_block import ControlBlock, parse_date
from hazel.decisions.record import (
    AGENDA_TYPE,
    AUTHOR,
    BACKLOG_DESCRIPTION,
    BACKLOG_TITLE,
    CIRCLE,
    NEXT_ACTION_DATE,
    NEXT_ACTION_RESPONSIBLE,
    ORIGINAL_DESCRIPTION,
    ORIGINAL_TITLE,
    OUTCOME,
    PARTICIPANTS,
    DecisionRecord,
    EmbedField,
)
from hazel.errors import ControlBlockError
from hazel.meetings import MeetingSession

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

BACKLOG_ITEM_HEADING = "Nyt punkt til husmøde"
TITLE_MIN_LENGTH = 5
DESCRIPTION_MIN_LENGTH = 10
DESCRIPTION_MAX_LENGTH = 1500


@dataclass
class OutcomeForm:
    """What the meeting filled in for a backlog item."""

    outcome: str
    agenda_type: str = "beslutning"
    responsible: str = ""
    next_action_date: str = ""
    assist: bool = False
    alignment: bool = False


@dataclass
class BacklogItem:
    """Title and description of the agenda item the outcome closes."""

    title: str = "–"
    description: str = "–"
    agenda_type: str = "beslutning"

    @classmethod
    def from_record(cls, record: DecisionRecord) -> BacklogItem:
        """Read a posted backlog item or follow-up back."""
        return cls(
            title=record.field_value(BACKLOG_TITLE) or "–",
            description=record.field_value(BACKLOG_DESCRIPTION) or "–",
            agenda_type=record.field_value(AGENDA_TYPE) or "beslutning",
        )


def mention(user_id: str) -> str:
    return f"<@{user_id}>"


def build_backlog_item(
    circle: CircleConfig,
    agenda_type: str,
    title: str,
    description: str,
    author_id: str,
) -> DecisionDraft:
    """A new agenda point for a circle's backlog. Raises ValueError on bad input."""
    title = title.strip()
    description = description.strip()
    if len(title) < TITLE_MIN_LENGTH:
        raise ValueError(f"Title must be at least {TITLE_MIN_LENGTH} characters")
    if not DESCRIPTION_MIN_LENGTH <= len(description) <= DESCRIPTION_MAX_LENGTH:
        raise ValueError(
            f"Description must be {DESCRIPTION_MIN_LENGTH}-{DESCRIPTION_MAX_LENGTH} characters"
        )

    return DecisionDraft(
        title=BACKLOG_ITEM_HEADING,
        color=circle.embed_color,
        fields=[
            EmbedField(CIRCLE, circle.name, inline=True),
            EmbedField(AUTHOR, mention(author_id), inline=True),
            EmbedField(AGENDA_TYPE, agenda_type, inline=True),
            EmbedField(BACKLOG_TITLE, title),
            EmbedField(BACKLOG_DESCRIPTION, description),
        ],
    )


def build_control_block(circle: CircleConfig, form: OutcomeForm) -> ControlBlock:
    block = ControlBlock(
        backlog_channel_id=circle.backlog_channel_id,
        post_process=form.assist,
        post_alignment=form.alignment,
    )
    date_text = form.next_action_date.strip()
    # Free-form dates are resolved by the normalization lane instead
    if _ISO_DATE_RE.match(date_text):
        try:
            block.next_action_date = parse_date(date_text)
            block.next_action_date_handled = False
        except ControlBlockError:
            pass
    return block


def build_decision(
    circle: CircleConfig,
    session: MeetingSession,
    form: OutcomeForm,
    author_id: str,
    backlog_item: BacklogItem,
) -> DecisionDraft:
    """Lay out the decision fields in their canonical order."""
    fields = [
        EmbedField(CIRCLE, circle.name, inline=True),
        EmbedField(AUTHOR, mention(author_id), inline=True),
        EmbedField(AGENDA_TYPE, form.agenda_type, inline=True),
        EmbedField(ORIGINAL_TITLE, backlog_item.title),
        EmbedField(ORIGINAL_DESCRIPTION, backlog_item.description),
        EmbedField(OUTCOME, form.outcome),
        EmbedField(PARTICIPANTS, ", ".join(mention(p) for p in sorted(session.participants))),
    ]
    if form.next_action_date.strip():
        fields.append(EmbedField(NEXT_ACTION_DATE, form.next_action_date.strip(), inline=True))
    if form.responsible.strip():
        fields.append(EmbedField(NEXT_ACTION_RESPONSIBLE, form.responsible.strip(), inline=True))
    fields.append(build_control_block(circle, form).to_field())

    return DecisionDraft(
        title=form.agenda_type[:1].upper() + form.agenda_type[1:],
        color=circle.embed_color,
        fields=fields,
    )
