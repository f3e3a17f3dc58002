"""Tests for the Golden Visa qualification flow."""

import pytest

from replyflow.db.enums import NotificationType, TaskType
from replyflow.db.models import Notification, OutboundJob
from replyflow.schemas.lead_data import GoldenVisaState, LeadData
from replyflow.services import task_service
from replyflow.services.qualifiers import GoldenVisaQualifier, get_qualifier
from replyflow.services.qualifiers.golden_visa import (
    GoldenVisaCategory,
    Proof,
    Timeline,
    parse_amount,
    parse_category,
    parse_proof,
    parse_timeline,
)
from replyflow.services.reply_service import ReplyContext, ReplyGenerator


def _converse(qualifier, messages):
    """Feed messages in order; returns the list of turns."""
    state = qualifier.state_model()
    turns = []
    for index, text in enumerate(messages, 1):
        turn = qualifier.handle(state, text, f"wamid.{index}")
        state = turn.state
        turns.append(turn)
    return turns


# =============================================================================
# Parsers
# =============================================================================


@pytest.mark.parametrize(
    "text, expected",
    [
        ("around 2.5M AED", 2_500_000),
        ("2,000,000", 2_000_000),
        ("2 million", 2_000_000),
        ("30k per month", 30_000),
        ("no idea", None),
    ],
)
def test_parse_amount(text, expected):
    assert parse_amount(text) == expected


@pytest.mark.parametrize(
    "text, expected",
    [
        ("1", GoldenVisaCategory.REAL_ESTATE_INVESTOR),
        ("(4)", GoldenVisaCategory.OUTSTANDING_STUDENT),
        ("I own a villa", GoldenVisaCategory.REAL_ESTATE_INVESTOR),
        ("I'm a doctor", GoldenVisaCategory.PROFESSIONAL),
        ("7", None),
        ("hello", None),
    ],
)
def test_parse_category(text, expected):
    assert parse_category(text) == expected


@pytest.mark.parametrize(
    "text, expected",
    [
        ("ASAP please", Timeline.ASAP),
        ("this week", Timeline.THIS_WEEK),
        ("within a month", Timeline.THIS_MONTH),
        ("not sure yet", Timeline.NO_RUSH),
        ("maybe now", Timeline.NO_RUSH),
        ("hmm", None),
    ],
)
def test_parse_timeline(text, expected):
    assert parse_timeline(text) == expected


@pytest.mark.parametrize(
    "text, expected",
    [
        ("yes", Proof.YES),
        ("I have some of them", Proof.PARTLY),
        ("not yet", Proof.NO),
        ("what?", None),
    ],
)
def test_parse_proof(text, expected):
    assert parse_proof(text) == expected


# =============================================================================
# Eligibility
# =============================================================================


@pytest.mark.parametrize(
    "state, expected",
    [
        (GoldenVisaState(category="real_estate_investor"), None),
        (GoldenVisaState(category="real_estate_investor", answers={"category_detail": 2_000_000}), True),
        (GoldenVisaState(category="real_estate_investor", answers={"category_detail": 1_500_000}), False),
        (GoldenVisaState(category="professional", answers={"category_detail": 25_000}), False),
        (GoldenVisaState(category="entrepreneur", answers={"category_detail": False}), False),
        (GoldenVisaState(category="entrepreneur", answers={"category_detail": True}), None),
        (
            GoldenVisaState(category="entrepreneur", answers={"category_detail": True}, proof="partly"),
            True,
        ),
        (GoldenVisaState(category="outstanding_student", answers={"category_detail": 3.2}), False),
        (
            GoldenVisaState(category="outstanding_student", answers={"category_detail": 3.8}, proof="no"),
            False,
        ),
        (GoldenVisaState(category="scientist", proof="yes"), True),
        (GoldenVisaState(category="talent_media"), None),
    ],
)
def test_evaluate_eligibility(state, expected):
    assert GoldenVisaQualifier().evaluate_eligibility(state) is expected


def test_escalation_requires_eligibility_and_a_near_timeline():
    qualifier = GoldenVisaQualifier()

    assert qualifier.should_escalate(GoldenVisaState(likely_eligible=True, timeline="asap"))
    assert not qualifier.should_escalate(GoldenVisaState(likely_eligible=True, timeline="no_rush"))
    assert not qualifier.should_escalate(GoldenVisaState(likely_eligible=True))
    assert not qualifier.should_escalate(GoldenVisaState(likely_eligible=None, timeline="asap"))
    assert not qualifier.should_escalate(GoldenVisaState(likely_eligible=False, timeline="asap"))


# =============================================================================
# Conversations
# =============================================================================


def test_full_flow_escalates_eligible_urgent_lead():
    turns = _converse(
        GoldenVisaQualifier(),
        ["Hi, I want a golden visa", "1", "around 2.5M AED", "yes", "asap"],
    )

    assert [t.question_key for t in turns] == [
        "golden_visa_q1",
        "golden_visa_q2",
        "golden_visa_q3",
        "golden_visa_q4",
        "golden_visa_done",
    ]
    assert "which of these best describes you" in turns[0].reply
    assert "property" in turns[1].reply.lower()
    assert [t.escalate for t in turns] == [False, False, False, False, True]
    final = turns[-1].state
    assert final.escalated and final.completed
    assert final.likely_eligible is True
    assert "within 24 hours" in turns[-1].reply


def test_every_reply_asks_at_most_one_question():
    turns = _converse(
        GoldenVisaQualifier(),
        ["golden visa please", "2", "35k", "partly", "this month"],
    )

    for turn in turns:
        assert turn.reply.count("?") <= 1


def test_no_rush_timeline_does_not_escalate():
    turns = _converse(GoldenVisaQualifier(), ["golden visa", "1", "3M", "yes", "maybe later"])

    assert not any(t.escalate for t in turns)
    assert turns[-1].state.completed
    assert "Whenever you are ready" in turns[-1].reply


def test_ineligible_lead_is_offered_alternatives():
    turns = _converse(GoldenVisaQualifier(), ["golden visa", "2", "12,000", "yes", "asap"])

    assert turns[-1].state.likely_eligible is False
    assert not turns[-1].escalate
    assert "family visa" in turns[-1].reply


def test_opening_message_prefills_category():
    [turn] = _converse(GoldenVisaQualifier(), ["I'm a property investor, golden visa?"])

    assert turn.state.category == GoldenVisaCategory.REAL_ESTATE_INVESTOR.value
    assert turn.state.step == "category_detail"


def test_bare_number_opening_is_not_prefilled():
    [turn] = _converse(GoldenVisaQualifier(), ["3"])

    assert turn.state.category is None
    assert turn.state.step == "category"


def test_unrecognized_answer_reprompts_without_inventing_a_value():
    turns = _converse(GoldenVisaQualifier(), ["golden visa", "banana"])

    assert turns[1].reply.startswith("Sorry, I didn't catch that.")
    assert turns[1].state.step == "category"
    assert turns[1].state.category is None
    assert turns[1].state.answers == {}


def test_question_cap_ends_the_flow():
    turns = _converse(GoldenVisaQualifier(max_questions=2), ["golden visa", "banana", "1", "anything"])

    assert turns[1].state.questions_asked == 2
    assert turns[2].question_key == "golden_visa_done"
    assert turns[2].state.completed
    assert "Our team will review" in turns[2].reply
    assert turns[3].reply is None
    assert turns[3].state.questions_asked == 2


def test_same_inbound_id_is_replayed_without_advancing():
    qualifier = GoldenVisaQualifier()
    first = qualifier.handle(qualifier.state_model(), "golden visa", "wamid.1")
    second = qualifier.handle(first.state, "1", "wamid.2")

    replay = qualifier.handle(second.state, "1", "wamid.2")

    assert replay.replayed
    assert replay.reply == second.reply
    assert replay.question_key == second.question_key
    assert replay.state.questions_asked == second.state.questions_asked


def test_state_round_trips_through_lead_data():
    qualifier = GoldenVisaQualifier()
    turn = qualifier.handle(qualifier.state_model(), "golden visa", "wamid.1")
    data = LeadData()

    qualifier.store_state(data, turn.state)
    restored = qualifier.load_state(LeadData.from_json(data.to_json()))

    assert "goldenVisa" in data.to_json()
    assert restored.step == "category"
    assert restored.questions_asked == 1


def test_registry():
    assert isinstance(get_qualifier("golden_visa"), GoldenVisaQualifier)
    assert get_qualifier("family_visa") is None
    assert get_qualifier("not-a-service") is None
    assert get_qualifier(None) is None


# =============================================================================
# Reply generation
# =============================================================================


def _context(db, conversation, lead, inbound_message, now) -> ReplyContext:
    job = OutboundJob(trigger_provider_message_id=inbound_message.provider_message_id)
    return ReplyContext(
        db=db,
        job=job,
        conversation=conversation,
        lead=lead,
        trigger_message=inbound_message,
        now=now,
    )


@pytest.mark.asyncio
async def test_generator_asks_first_question_without_ai(
    db, lead, conversation, inbound_message, ai_provider, now
):
    lead.service_type = "golden_visa"

    reply = await ReplyGenerator(ai_provider=ai_provider).generate(
        _context(db, conversation, lead, inbound_message, now)
    )

    assert reply.startswith("To check your Golden Visa eligibility")
    assert "1. Property investor (AED 2M+)" in reply
    assert ai_provider.calls == []
    assert conversation.last_question_key == "golden_visa_q1"
    assert lead.data_json["goldenVisa"]["questions_asked"] == 1


@pytest.mark.asyncio
async def test_generator_escalates_to_consultation(
    db, lead, conversation, inbound_message, ai_provider, now
):
    lead.service_type = "golden_visa"
    data = LeadData()
    data.golden_visa = GoldenVisaState(
        category="real_estate_investor",
        answers={"category": "real_estate_investor", "category_detail": 2_500_000, "proof": "yes"},
        proof="yes",
        step="timeline",
        questions_asked=3,
    )
    lead.data_json = data.to_json()
    inbound_message.body = "ASAP please"

    reply = await ReplyGenerator(ai_provider=ai_provider).generate(
        _context(db, conversation, lead, inbound_message, now)
    )

    assert "consultant will contact you" in reply
    assert conversation.last_question_key == "golden_visa_done"
    assert lead.data_json["goldenVisa"]["escalated"] is True

    key = task_service.consultation_task_key(lead.id, "golden_visa")
    task = task_service.get_task_by_key(db, key)
    assert task.task_type == TaskType.CONSULTATION.value
    assert task.title.startswith("[HIGH PRIORITY]")
    notification = db.query(Notification).filter(Notification.dedupe_key == key).one()
    assert notification.notification_type == NotificationType.ESCALATION.value


@pytest.mark.asyncio
async def test_generator_falls_back_to_ai_for_other_services(
    db, lead, conversation, inbound_message, ai_provider, now
):
    lead.service_type = "family_visa"

    reply = await ReplyGenerator(ai_provider=ai_provider).generate(
        _context(db, conversation, lead, inbound_message, now)
    )

    assert reply == ai_provider.content
    assert len(ai_provider.calls) == 1
