"""Golden Visa eligibility qualifier.

Steps: category -> category detail (where the category has one) -> proof ->
timeline. Escalation to a consultant requires BOTH a likely-eligible profile
and a timeline that is not "no rush".
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any

from replyflow.db.enums import ServiceType
from replyflow.schemas.lead_data import GoldenVisaState
from replyflow.services.qualifiers.base import UNRECOGNIZED, ParsedAnswer, Qualifier

PROPERTY_VALUE_THRESHOLD_AED = 2_000_000
SALARY_THRESHOLD_AED = 30_000
GPA_THRESHOLD = 3.5


class GoldenVisaCategory(str, Enum):
    REAL_ESTATE_INVESTOR = "real_estate_investor"
    PROFESSIONAL = "professional"
    ENTREPRENEUR = "entrepreneur"
    OUTSTANDING_STUDENT = "outstanding_student"
    TALENT_MEDIA = "talent_media"
    SCIENTIST = "scientist"


class Timeline(str, Enum):
    ASAP = "asap"
    THIS_WEEK = "this_week"
    THIS_MONTH = "this_month"
    NO_RUSH = "no_rush"


class Proof(str, Enum):
    YES = "yes"
    PARTLY = "partly"
    NO = "no"


STEP_CATEGORY = "category"
STEP_DETAIL = "category_detail"
STEP_PROOF = "proof"
STEP_TIMELINE = "timeline"

CATEGORY_OPTIONS: list[tuple[GoldenVisaCategory, str, list[str]]] = [
    (
        GoldenVisaCategory.REAL_ESTATE_INVESTOR,
        "Property investor (AED 2M+)",
        ["property", "real estate", "investor", "villa", "apartment"],
    ),
    (
        GoldenVisaCategory.PROFESSIONAL,
        "Professional (salary AED 30K+/month)",
        ["professional", "salary", "employee", "doctor", "engineer", "manager"],
    ),
    (
        GoldenVisaCategory.ENTREPRENEUR,
        "Entrepreneur / business owner",
        ["entrepreneur", "business owner", "own a company", "founder", "startup"],
    ),
    (
        GoldenVisaCategory.OUTSTANDING_STUDENT,
        "Outstanding student / graduate",
        ["student", "graduate", "university", "gpa"],
    ),
    (
        GoldenVisaCategory.TALENT_MEDIA,
        "Media or creative talent",
        ["media", "artist", "creative", "influencer", "talent", "content creator"],
    ),
    (
        GoldenVisaCategory.SCIENTIST,
        "Scientist / researcher",
        ["scientist", "researcher", "research", "phd"],
    ),
]

CATEGORIES_WITH_DETAIL = {
    GoldenVisaCategory.REAL_ESTATE_INVESTOR.value,
    GoldenVisaCategory.PROFESSIONAL.value,
    GoldenVisaCategory.ENTREPRENEUR.value,
    GoldenVisaCategory.OUTSTANDING_STUDENT.value,
}

PROOF_QUESTIONS = {
    GoldenVisaCategory.REAL_ESTATE_INVESTOR.value: "Do you have the title deed(s) ready?",
    GoldenVisaCategory.PROFESSIONAL.value: "Do you have a salary certificate and employment contract?",
    GoldenVisaCategory.ENTREPRENEUR.value: "Do you have your trade license and company documents?",
    GoldenVisaCategory.OUTSTANDING_STUDENT.value: "Do you have your transcript and degree certificate?",
    GoldenVisaCategory.TALENT_MEDIA.value: "Do you have a portfolio, awards or recommendation letters?",
    GoldenVisaCategory.SCIENTIST.value: "Do you have publications or a recommendation from a research body?",
}

_TIMELINE_PATTERNS: list[tuple[Timeline, re.Pattern]] = [
    (
        Timeline.NO_RUSH,
        re.compile(r"\b(?:later|no rush|not urgent|not sure|just exploring|next year|someday|maybe)\b"),
    ),
    (Timeline.THIS_WEEK, re.compile(r"\b(?:this week|few days|within (?:a|one) week)\b")),
    (Timeline.THIS_MONTH, re.compile(r"\b(?:this month|within (?:a|one) month|next month|few weeks)\b")),
    (Timeline.ASAP, re.compile(r"\b(?:asap|urgent(?:ly)?|immediately|right away|now|today)\b")),
]

_PROOF_PATTERNS: list[tuple[Proof, re.Pattern]] = [
    (Proof.PARTLY, re.compile(r"\b(?:partly|partially|partial|some of|some|not all|few)\b")),
    (Proof.NO, re.compile(r"\b(?:no|nope|not yet|don'?t|do not|none|haven'?t)\b")),
    (Proof.YES, re.compile(r"\b(?:yes|yeah|yep|yup|sure|i do|i have|have them|ready|all)\b")),
]
_YES_NO_PATTERNS: list[tuple[bool, re.Pattern]] = [
    (False, re.compile(r"\b(?:no|nope|not yet|don'?t|do not|haven'?t)\b")),
    (True, re.compile(r"\b(?:yes|yeah|yep|yup|sure|i do|i have|i own|correct)\b")),
]

_AMOUNT_RE = re.compile(
    r"(\d[\d,]*(?:\.\d+)?)\s*(million|mn|mil|m|thousand|k)?\b", re.IGNORECASE
)
_MULTIPLIERS = {"million": 1_000_000, "mn": 1_000_000, "mil": 1_000_000, "m": 1_000_000,
                "thousand": 1_000, "k": 1_000}
_GPA_RE = re.compile(r"\b([0-4](?:\.\d{1,2})?)\b")


def parse_amount(text: str) -> float | None:
    """Parse "2.5M", "2,000,000", "2 million", "30k" into a number."""
    match = _AMOUNT_RE.search(text)
    if not match:
        return None
    value = float(match.group(1).replace(",", ""))
    suffix = (match.group(2) or "").lower()
    return value * _MULTIPLIERS.get(suffix, 1)


def parse_category(text: str) -> GoldenVisaCategory | None:
    lowered = text.lower().strip()
    number = re.fullmatch(r"\(?([1-6])[).]?", lowered)
    if number:
        return CATEGORY_OPTIONS[int(number.group(1)) - 1][0]
    for category, _label, keywords in CATEGORY_OPTIONS:
        if any(re.search(rf"\b{re.escape(k)}\b", lowered) for k in keywords):
            return category
    return None


def parse_timeline(text: str) -> Timeline | None:
    lowered = text.lower()
    for timeline, pattern in _TIMELINE_PATTERNS:
        if pattern.search(lowered):
            return timeline
    return None


def parse_proof(text: str) -> Proof | None:
    lowered = text.lower()
    for proof, pattern in _PROOF_PATTERNS:
        if pattern.search(lowered):
            return proof
    return None


def parse_yes_no(text: str) -> bool | None:
    lowered = text.lower()
    for value, pattern in _YES_NO_PATTERNS:
        if pattern.search(lowered):
            return value
    return None


class GoldenVisaQualifier(Qualifier[GoldenVisaState]):
    service = ServiceType.GOLDEN_VISA
    state_field = "golden_visa"
    state_model = GoldenVisaState
    key_prefix = "golden_visa"

    def next_question(self, state: GoldenVisaState) -> str | None:
        if state.questions_asked >= self.max_questions:
            return None
        if not state.category:
            return STEP_CATEGORY
        if state.category in CATEGORIES_WITH_DETAIL and STEP_DETAIL not in state.answers:
            return STEP_DETAIL
        if not state.proof:
            return STEP_PROOF
        if not state.timeline:
            return STEP_TIMELINE
        return None

    def parse_answer(self, step: str, text: str, state: GoldenVisaState) -> ParsedAnswer:
        if step == STEP_CATEGORY:
            category = parse_category(text)
            return ParsedAnswer(True, category.value) if category else UNRECOGNIZED
        if step == STEP_DETAIL:
            return self._parse_detail(state.category, text)
        if step == STEP_PROOF:
            proof = parse_proof(text)
            return ParsedAnswer(True, proof.value) if proof else UNRECOGNIZED
        if step == STEP_TIMELINE:
            timeline = parse_timeline(text)
            return ParsedAnswer(True, timeline.value) if timeline else UNRECOGNIZED
        return UNRECOGNIZED

    def _parse_detail(self, category: str | None, text: str) -> ParsedAnswer:
        if category in (
            GoldenVisaCategory.REAL_ESTATE_INVESTOR.value,
            GoldenVisaCategory.PROFESSIONAL.value,
        ):
            amount = parse_amount(text)
            return ParsedAnswer(True, amount) if amount is not None else UNRECOGNIZED
        if category == GoldenVisaCategory.ENTREPRENEUR.value:
            owns = parse_yes_no(text)
            return ParsedAnswer(True, owns) if owns is not None else UNRECOGNIZED
        if category == GoldenVisaCategory.OUTSTANDING_STUDENT.value:
            match = _GPA_RE.search(text)
            return ParsedAnswer(True, float(match.group(1))) if match else UNRECOGNIZED
        return UNRECOGNIZED

    def apply_answer(self, state: GoldenVisaState, step: str, value: Any) -> None:
        state.answers[step] = value
        if step == STEP_CATEGORY:
            state.category = value
        elif step == STEP_PROOF:
            state.proof = value
        elif step == STEP_TIMELINE:
            state.timeline = value

    def prefill(self, state: GoldenVisaState, text: str) -> None:
        category = parse_category(text)
        if category and not re.fullmatch(r"\s*\(?[1-6][).]?\s*", text):
            self.apply_answer(state, STEP_CATEGORY, category.value)

    def evaluate_eligibility(self, state: GoldenVisaState) -> bool | None:
        category = state.category
        detail = state.answers.get(STEP_DETAIL)
        has_proof = state.proof in (Proof.YES.value, Proof.PARTLY.value)

        if category == GoldenVisaCategory.REAL_ESTATE_INVESTOR.value:
            return None if detail is None else detail >= PROPERTY_VALUE_THRESHOLD_AED
        if category == GoldenVisaCategory.PROFESSIONAL.value:
            return None if detail is None else detail >= SALARY_THRESHOLD_AED
        if category == GoldenVisaCategory.ENTREPRENEUR.value:
            if detail is False:
                return False
            if detail is None or state.proof is None:
                return None
            return has_proof
        if category == GoldenVisaCategory.OUTSTANDING_STUDENT.value:
            if detail is not None and detail < GPA_THRESHOLD:
                return False
            if detail is None or state.proof is None:
                return None
            return has_proof
        if category in (GoldenVisaCategory.TALENT_MEDIA.value, GoldenVisaCategory.SCIENTIST.value):
            return None if state.proof is None else has_proof
        return None

    def should_escalate(self, state: GoldenVisaState) -> bool:
        return (
            state.likely_eligible is True
            and state.timeline is not None
            and state.timeline != Timeline.NO_RUSH.value
        )

    def question_text(self, step: str, state: GoldenVisaState) -> str:
        if step == STEP_CATEGORY:
            options = "\n".join(
                f"{index}. {label}" for index, (_c, label, _k) in enumerate(CATEGORY_OPTIONS, 1)
            )
            return (
                "To check your Golden Visa eligibility, which of these best describes you?\n"
                f"{options}\nReply with the number or the name."
            )
        if step == STEP_DETAIL:
            return {
                GoldenVisaCategory.REAL_ESTATE_INVESTOR.value:
                    "What is the total value of your UAE property in AED?",
                GoldenVisaCategory.PROFESSIONAL.value:
                    "What is your monthly salary in AED?",
                GoldenVisaCategory.ENTREPRENEUR.value:
                    "Do you own a company registered in the UAE (yes / no)?",
                GoldenVisaCategory.OUTSTANDING_STUDENT.value:
                    "What is your GPA (out of 4.0)?",
            }[state.category]
        if step == STEP_PROOF:
            return f"{PROOF_QUESTIONS[state.category]} Reply yes / partly / no."
        if step == STEP_TIMELINE:
            return "When would you like to start: ASAP, this week, this month, or later?"
        raise ValueError(f"Unknown Golden Visa step {step}")

    def closing_message(self, state: GoldenVisaState) -> str:
        if state.escalated:
            return (
                "Thank you. Based on your answers you may be eligible for the UAE Golden Visa. "
                "A consultant will contact you within 24 hours to verify your documents."
            )
        if state.likely_eligible:
            return (
                "Thank you. Based on your answers you may be eligible for the UAE Golden Visa. "
                "Whenever you are ready to start, reply here and we will arrange a consultation."
            )
        if state.likely_eligible is False:
            return (
                "Thank you for the details. The Golden Visa may not be the best fit right now, "
                "but a family visa, employment visa or freelance visa could work for you. "
                "Would you like details on any of these?"
            )
        return (
            "Thank you for the details. Our team will review your case and get back to you "
            "with the best options."
        )
