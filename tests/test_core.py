"""Tests for the Hazel orchestrator and the daemon wiring."""

import json
from datetime import date, timedelta

import pytest

from fakes import FakeHistory, FakeTransform, make_decision
from hazel.config import DiscordConfig, EngineConfig, HazelConfig, SchedulerConfig, parse_circles_env
from hazel.core import Hazel
from hazel.daemon import HazelDaemon
from hazel.decisions.control_block import ControlBlock
from hazel.decisions.outcome import BacklogItem, OutcomeForm
from hazel.decisions.record import (
    AGENDA_TYPE,
    BACKLOG_DESCRIPTION,
    BACKLOG_TITLE,
    META_FIELD,
    DecisionRecord,
    EmbedField,
)
from hazel.errors import (
    ControlBlockError,
    NoActiveMeeting,
    NotAWriter,
    RecordAccessError,
    RecordNotFound,
    UnknownCircle,
)


@pytest.fixture
def config() -> HazelConfig:
    return HazelConfig(
        discord=DiscordConfig(
            token="tok",
            decision_channel_id="decisions",
            vision_channel_id="vision",
            handbook_channel_id="handbook",
        ),
        scheduler=SchedulerConfig(meeting_duration=3600),
        circles=parse_circles_env("economy:111:555,main:222:557", {"economy": 0x2ECC71}),
    )


@pytest.fixture
def history() -> FakeHistory:
    return FakeHistory()


@pytest.fixture
def transform() -> FakeTransform:
    return FakeTransform()


@pytest.fixture
def hazel(config, store, transform, presenter, history, clock) -> Hazel:
    return Hazel(config, store, transform, presenter, history, clock=clock)


class TestMeetingsAndOutcomes:
    def test_start_meeting_unknown_circle(self, hazel):
        with pytest.raises(UnknownCircle):
            hazel.start_meeting("garden", ["u1"])

    @pytest.mark.asyncio
    async def test_record_outcome_requires_meeting(self, hazel, presenter):
        with pytest.raises(NoActiveMeeting):
            await hazel.record_outcome("economy", OutcomeForm(outcome="Ja"), "u1")
        assert presenter.decisions == []

    @pytest.mark.asyncio
    async def test_record_outcome_after_expiry(self, hazel, clock):
        hazel.start_meeting("economy", ["u1"])
        clock.advance(hours=1, seconds=1)
        with pytest.raises(NoActiveMeeting):
            await hazel.record_outcome("economy", OutcomeForm(outcome="Ja"), "u1")

    @pytest.mark.asyncio
    async def test_record_outcome_unknown_circle(self, hazel):
        with pytest.raises(UnknownCircle):
            await hazel.record_outcome("garden", OutcomeForm(outcome="Ja"), "u1")

    @pytest.mark.asyncio
    async def test_record_outcome_publishes_decision(self, hazel, presenter):
        hazel.start_meeting("economy", ["u2", "u1"])
        form = OutcomeForm(
            outcome="Vi køber ind sammen",
            responsible="<@u2>",
            next_action_date="2026-04-01",
            assist=True,
            alignment=True,
        )

        record_id = await hazel.record_outcome(
            "economy", form, "u1", BacklogItem(title="Indkøb", description="Fælles indkøb?")
        )

        assert record_id == "msg-1"
        channel_id, draft = presenter.decisions[0]
        assert channel_id == "decisions"
        assert draft.title == "Beslutning"
        assert draft.color == 0x2ECC71
        names = [f.name for f in draft.fields]
        assert names == [
            "Cirkel", "Forfatter", "Agenda type", "Original Overskrift",
            "Original Beskrivelse", "Udfald", "Deltagere", "Opfølgningsdato",
            "Ansvarlig", META_FIELD,
        ]
        values = {f.name: f.value for f in draft.fields}
        assert values["Deltagere"] == "<@u1>, <@u2>"
        assert values["Forfatter"] == "<@u1>"

        block = ControlBlock.from_json(values[META_FIELD])
        assert block.post_process is True
        assert block.post_alignment is True
        assert block.backlog_channel_id == "111"
        assert block.next_action_date == date(2026, 4, 1)
        assert block.next_action_date_handled is False

    @pytest.mark.asyncio
    async def test_free_form_date_left_for_normalization(self, hazel, presenter):
        hazel.start_meeting("main", ["u1"])
        form = OutcomeForm(outcome="Ja", next_action_date="om to uger", assist=True)

        await hazel.record_outcome("main", form, "u1")

        _, draft = presenter.decisions[0]
        meta = json.loads(draft.fields[-1].value)
        assert "next_action_date" not in meta
        assert meta["post_process"] is True
        assert any(f.value == "om to uger" for f in draft.fields)


def backlog_message(message_id: str = "b1") -> DecisionRecord:
    return DecisionRecord(
        id=message_id,
        title="Nyt punkt til husmøde",
        fields=[
            EmbedField("Cirkel", "economy", inline=True),
            EmbedField(AGENDA_TYPE, "beslutning", inline=True),
            EmbedField(BACKLOG_TITLE, "Ny vaskemaskine"),
            EmbedField(BACKLOG_DESCRIPTION, "Den gamle maskine er gået i stykker."),
        ],
    )


class TestBacklog:
    @pytest.mark.asyncio
    async def test_submit_posts_to_backlog_channel(self, hazel, presenter):
        message_id = await hazel.submit_backlog_item(
            "economy", "beslutning", "Ny vaskemaskine",
            "Den gamle maskine er gået i stykker.", "u1", ["999", "555"],
        )

        assert message_id == "backlog-1"
        channel_id, draft = presenter.backlog_items[0]
        assert channel_id == "111"
        assert draft.title == "Nyt punkt til husmøde"
        assert draft.color == 0x2ECC71
        values = {f.name: f.value for f in draft.fields}
        assert values["Forfatter"] == "<@u1>"
        assert values[BACKLOG_TITLE] == "Ny vaskemaskine"
        assert META_FIELD not in values

    @pytest.mark.asyncio
    async def test_submit_requires_writer_role(self, hazel, presenter):
        with pytest.raises(NotAWriter):
            await hazel.submit_backlog_item(
                "economy", "beslutning", "Ny vaskemaskine",
                "Den gamle maskine er gået i stykker.", "u1", ["557"],
            )
        assert presenter.backlog_items == []

    @pytest.mark.asyncio
    async def test_circle_without_writer_roles_denies_everyone(self, hazel, config):
        config.circles["economy"].writer_role_ids = []
        with pytest.raises(NotAWriter):
            await hazel.submit_backlog_item(
                "economy", "beslutning", "Ny vaskemaskine",
                "Den gamle maskine er gået i stykker.", "u1", ["555"],
            )

    @pytest.mark.asyncio
    async def test_submit_validates_lengths(self, hazel, presenter):
        with pytest.raises(ValueError, match="Title"):
            await hazel.submit_backlog_item("economy", "beslutning", "Kort", "x" * 20, "u1", ["555"])
        with pytest.raises(ValueError, match="Description"):
            await hazel.submit_backlog_item("economy", "beslutning", "Lang nok", "kort", "u1", ["555"])
        with pytest.raises(ValueError, match="Description"):
            await hazel.submit_backlog_item(
                "economy", "beslutning", "Lang nok", "x" * 1501, "u1", ["555"]
            )
        assert presenter.backlog_items == []

    @pytest.mark.asyncio
    async def test_submit_unknown_circle(self, hazel):
        with pytest.raises(UnknownCircle):
            await hazel.submit_backlog_item("garden", "beslutning", "Lang nok", "x" * 20, "u1", [])

    @pytest.mark.asyncio
    async def test_save_requires_meeting(self, hazel, history, presenter):
        history.channels["111"] = [backlog_message()]

        with pytest.raises(NoActiveMeeting):
            await hazel.save_backlog_item("111", "b1", OutcomeForm(outcome="Ja"), "u1")

        assert presenter.decisions == []
        assert history.deleted == []

    @pytest.mark.asyncio
    async def test_save_unknown_backlog_channel(self, hazel):
        with pytest.raises(UnknownCircle):
            await hazel.save_backlog_item("333", "b1", OutcomeForm(outcome="Ja"), "u1")

    @pytest.mark.asyncio
    async def test_save_records_decision_and_removes_item(self, hazel, history, presenter):
        history.channels["111"] = [backlog_message()]
        hazel.start_meeting("economy", ["u1"])

        record_id = await hazel.save_backlog_item("111", "b1", OutcomeForm(outcome="Ja"), "u1")

        assert record_id == "msg-1"
        channel_id, draft = presenter.decisions[0]
        assert channel_id == "decisions"
        values = {f.name: f.value for f in draft.fields}
        assert values["Original Overskrift"] == "Ny vaskemaskine"
        assert values["Original Beskrivelse"] == "Den gamle maskine er gået i stykker."
        assert history.deleted == [("111", "b1")]

    @pytest.mark.asyncio
    async def test_save_with_unreadable_item_uses_placeholders(self, hazel, history, presenter):
        history.fail_fetch = RecordAccessError("timeout")
        hazel.start_meeting("economy", ["u1"])

        await hazel.save_backlog_item("111", "b1", OutcomeForm(outcome="Ja"), "u1")

        values = {f.name: f.value for f in presenter.decisions[0][1].fields}
        assert values["Original Overskrift"] == "–"
        assert values["Original Beskrivelse"] == "–"

    @pytest.mark.asyncio
    async def test_save_survives_failed_delete(self, hazel, history, presenter):
        history.channels["111"] = [backlog_message()]
        history.fail_delete = RecordAccessError("forbidden")
        hazel.start_meeting("economy", ["u1"])

        record_id = await hazel.save_backlog_item("111", "b1", OutcomeForm(outcome="Ja"), "u1")

        assert record_id == "msg-1"
        assert len(presenter.decisions) == 1


class TestQuestions:
    @pytest.mark.asyncio
    async def test_ask_decisions_uses_decision_archive(self, hazel, history, transform):
        history.channels["decisions"] = [make_decision("1", ControlBlock(post_process=True))]

        answer = await hazel.ask_decisions("Hvad besluttede vi om indkøb?")

        assert answer == "Pip! Svaret står i arkivet."
        topic, archive, question = transform.answer_calls[0]
        assert topic == "decisions"
        assert "Vi køber ind sammen" in archive
        assert META_FIELD not in archive
        assert question == "Hvad besluttede vi om indkøb?"

    @pytest.mark.asyncio
    async def test_ask_decisions_empty_archive(self, hazel, transform):
        assert await hazel.ask_decisions("Noget?") is None
        assert transform.answer_calls == []

    @pytest.mark.asyncio
    async def test_ask_decisions_archive_is_bounded(self, hazel, history, transform):
        history.channels["decisions"] = [
            DecisionRecord(id=str(i), content="x" * 1000) for i in range(250, 0, -1)
        ]

        await hazel.ask_decisions("Noget?")

        # one full page already exceeds the budget
        assert len(history.calls) == 1
        _, archive, _ = transform.answer_calls[0]
        assert archive.count("x" * 1000) == 100

    @pytest.mark.asyncio
    async def test_ask_handbook_joins_vision_and_handbook(self, hazel, history, transform):
        history.channels["vision"] = [DecisionRecord(id="v1", content="Vi deler det meste.")]
        history.channels["handbook"] = [DecisionRecord(id="h1", content="Vaskeriet lukker kl. 22.")]

        await hazel.ask_handbook("Hvornår lukker vaskeriet?")

        topic, archive, _ = transform.answer_calls[0]
        assert topic == "handbook"
        assert archive.index("Vi deler det meste.") < archive.index("Vaskeriet lukker kl. 22.")

    @pytest.mark.asyncio
    async def test_ask_handbook_empty_archives(self, hazel, transform):
        assert await hazel.ask_handbook("Hvornår lukker vaskeriet?") is None
        assert transform.answer_calls == []


class TestAdmin:
    @pytest.mark.asyncio
    async def test_set_control_field(self, hazel, store):
        store.add(make_decision("1", ControlBlock(post_process=True, backlog_channel_id="111")))

        updated = await hazel.set_control_field("1", "post_alignment", "true")

        assert updated.post_alignment is True
        block = store.block("1")
        assert block.post_alignment is True
        assert block.post_process is True
        assert block.backlog_channel_id == "111"

    @pytest.mark.asyncio
    async def test_set_control_field_rejects_bad_value(self, hazel, store):
        store.add(make_decision("1", ControlBlock()))
        with pytest.raises(ControlBlockError):
            await hazel.set_control_field("1", "next_action_date", "snart")
        assert store.replace_calls == []

    @pytest.mark.asyncio
    async def test_set_control_field_not_a_decision(self, hazel, store):
        store.add(DecisionRecord(id="1", fields=[EmbedField("Tekst", "hej")]))
        with pytest.raises(ControlBlockError):
            await hazel.set_control_field("1", "post_process", True)

    @pytest.mark.asyncio
    async def test_set_control_field_missing_record(self, hazel):
        with pytest.raises(RecordNotFound):
            await hazel.set_control_field("nope", "post_process", True)

    @pytest.mark.asyncio
    async def test_pending_follow_ups(self, hazel, store, clock):
        store.add(make_decision("1", ControlBlock(next_action_date=date(2026, 3, 20))))
        store.add(make_decision("old", ControlBlock(next_action_date=date(2026, 3, 20)),
                                created_at=clock.now - timedelta(days=30)))

        pending = await hazel.pending_follow_ups()
        assert [p.record_id for p in pending] == ["1"]


class TestDaemon:
    def test_missing_configuration(self, tmp_path):
        daemon = HazelDaemon(HazelConfig(pid_file=tmp_path / "hazel.pid"))
        with pytest.raises(ValueError, match="BOT_TOKEN"):
            daemon.build_hazel()

    @pytest.mark.asyncio
    async def test_build_hazel(self, config, tmp_path):
        config.engine = EngineConfig(api_key="sk-test")
        config.pid_file = tmp_path / "hazel.pid"
        daemon = HazelDaemon(config)

        hazel = daemon.build_hazel()

        assert hazel.alignment is not None
        assert hazel.config.discord.decision_channel_id == "decisions"
        await daemon.close()

    def test_stale_pid_file_removed(self, config, tmp_path):
        config.pid_file = tmp_path / "hazel.pid"
        config.pid_file.write_text("not-a-pid")
        HazelDaemon(config)._check_existing()
        assert not config.pid_file.exists()
