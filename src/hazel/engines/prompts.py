"""Prompt building and response parsing for the transform engine.

The model receives a decision's fields as JSON and answers with JSON. Parsing
is strict about shape: anything that is not the documented object raises
TransformError, which the lanes treat as a terminal failure. Questions over
the archives are the exception: those answers are plain text.
"""

from __future__ import annotations

import json
import re
from datetime import date

from hazel.decisions.record import EmbedField
from hazel.engines.base import AlignmentResult, NormalizedResult
from hazel.errors import TransformError

NORMALIZE_PROMPT_TEMPLATE = """\
You are a helpful assistant that post-processes meeting-decision embeds.
You will receive as user content a JSON string of the form:
{{
  "embedFields": [
    {{ "name": "...", "value": "..." }}
  ]
}}

Today is {today}.

Your tasks:
1. Spell-check and correct typos in every "value" string.
2. For any field whose "name" contains the substring "Dato" (case-insensitive):
   - If the value already matches ISO "YYYY-MM-DD" and is a future date (>= today), leave it unchanged.
   - Else interpret its value as a Danish or English free-form date expression
     (e.g. "om 2 uger", "1. oktober", "naeste mandag", "6 maaneder", "Januar 2026").
     - If you parse it to a future date, convert it to "YYYY-MM-DD".
     - If a range or imprecise period is given ("naeste uge"), choose the first Thursday of that period.
     - If you cannot parse it unambiguously, set it to exactly 14 days from today.
3. Do not modify fields whose "name" does not include "Dato" except for typo-fixing.
4. Return a JSON object with the exact same structure.
5. Add exactly ONE new key called "post_process_changes" describing your changes.
   - If you made no changes, set it to "No changes made".
6. Do not add any other fields or metadata. Respond with JSON only.
"""

ALIGNMENT_PROMPT = """\
You are a sociocratic facilitator for the Kunja community. Your job is to check
that a group decision aligns with the community's shared vision, the handbook
of practices, and earlier decisions made by consent.

Decisions reached by sociocratic consent are considered correct expressions of
the collective will. If a newly recorded decision conflicts with the vision or
the handbook:
  1. Set "should_raise_objection": true.
  2. In "suggested_revision", suggest a revision to the vision or handbook
     (in as many words as needed) that would bring them into harmony with the
     consented decision.

If there is no conflict, set "should_raise_objection": false and
"suggested_revision": null.

Always respond in the same language as the archives (English or Danish).

You will receive the vision archive, the handbook archive and the decision as
{"embedFields": [{"name": "...", "value": "..."}]}.

Return only a JSON object with exactly these two keys, for example:
{"should_raise_objection": true, "suggested_revision": "Update the handbook section on cost-sharing to allow household-based splits when consented by all members."}
"""

DECISION_ASK_PROMPT = """\
You are the Hazel dormouse, the witty mascot of Kunja. Begin every answer with
one short, playful or mouse-related remark. Then switch to a formal, concise
style and answer strictly from the decision archive.

Each decision lists its circle, author, agenda type, original title and
description, outcome ("Udfald"), participants ("Deltagere") and, when set, a
follow-up date ("Opfølgningsdato") with a responsible person ("Ansvarlig").
Mention upcoming follow-up dates when relevant and always mention who attended.

If the archive lacks the information you need, say you do not know. Answer in
the user's native language.
"""

HANDBOOK_ASK_PROMPT = """\
Du er Hazel, hasselmusen og bibliotekar for #håndbog. Start altid svaret med et
kort, mus-relateret og humoristisk udbrud, og gå derefter formelt og præcist til
sagen.
Træk alle oplysninger fra vision- og håndbogsarkivet, som indeholder praktiske
tips om hverdagslivet i Kunja (vaskeri, kontakter, møder, parkering osv.).
Hvis spørgsmålet ligger uden for arkivet, sig det ærligt og henvis til en
administrator eller til yderligere ressourcer. Svar brugeren på hans/hendes
modersmål.
"""

ASK_PROMPTS = {
    "decisions": DECISION_ASK_PROMPT,
    "handbook": HANDBOOK_ASK_PROMPT,
}

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def fields_payload(fields: list[EmbedField]) -> str:
    return json.dumps(
        {"embedFields": [{"name": f.name, "value": f.value} for f in fields]},
        ensure_ascii=False,
    )


def build_normalize_prompt(today: date) -> str:
    return NORMALIZE_PROMPT_TEMPLATE.format(today=today.isoformat())


def build_alignment_message(fields: list[EmbedField], vision: str, handbook: str) -> str:
    return (
        f"Vision archive:\n{vision or '(empty)'}\n\n"
        f"Handbook archive:\n{handbook or '(empty)'}\n\n"
        f"Decision:\n{fields_payload(fields)}"
    )


def ask_prompt(topic: str) -> str:
    try:
        return ASK_PROMPTS[topic]
    except KeyError:
        raise TransformError(f"Unknown question topic: {topic}") from None


def build_ask_message(archive: str, question: str) -> str:
    return f"Archive:\n{archive}\n\nQuestion:\n{question}"


def _load_object(text: str) -> dict:
    cleaned = _FENCE_RE.sub("", text.strip())
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        # Try to extract a JSON object from surrounding prose
        match = re.search(r"\{.*\}", cleaned, re.DOTALL)
        if not match:
            raise TransformError(f"Response is not JSON: {text[:200]!r}")
        try:
            data = json.loads(match.group())
        except json.JSONDecodeError as e:
            raise TransformError(f"Response is not JSON: {text[:200]!r}") from e
    if not isinstance(data, dict):
        raise TransformError("Response is not a JSON object")
    return data


def _flag(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def parse_normalize_response(text: str) -> NormalizedResult:
    """Parse the model's normalization answer."""
    data = _load_object(text)
    raw_fields = data.get("embedFields")
    if not isinstance(raw_fields, list):
        raise TransformError("Response has no embedFields list")

    fields: list[EmbedField] = []
    for item in raw_fields:
        if not isinstance(item, dict) or "name" not in item or "value" not in item:
            raise TransformError(f"Malformed embed field: {item!r}")
        fields.append(EmbedField(name=str(item["name"]), value=str(item["value"])))

    return NormalizedResult(
        fields=fields,
        change_description=data.get("post_process_changes") or None,
        error=_flag(data.get("post_processed_error", False)),
    )


def parse_alignment_response(text: str) -> AlignmentResult:
    """Parse the model's alignment answer."""
    data = _load_object(text)
    if "should_raise_objection" not in data:
        raise TransformError("Response has no should_raise_objection key")
    return AlignmentResult(
        objection=_flag(data["should_raise_objection"]),
        suggested_revision=data.get("suggested_revision") or None,
    )
