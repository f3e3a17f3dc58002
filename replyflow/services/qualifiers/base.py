"""Shared interface for per-service qualification flows.

Each service gets its own finite-state machine; new services add a subclass
rather than branching inside a shared function. Flow progress lives in the
lead's structured data under the qualifier's ``state_field``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar, Generic, TypeVar

from replyflow.core.config import settings
from replyflow.db.enums import ServiceType
from replyflow.schemas.lead_data import LeadData, QualifierState

S = TypeVar("S", bound=QualifierState)


@dataclass(frozen=True)
class ParsedAnswer:
    recognized: bool
    value: Any = None


UNRECOGNIZED = ParsedAnswer(recognized=False)


@dataclass(frozen=True)
class QualifierTurn:
    """Outcome of feeding one inbound message to a qualifier."""

    state: QualifierState
    reply: str | None
    question_key: str | None
    escalate: bool = False
    replayed: bool = False


class Qualifier(ABC, Generic[S]):
    service: ClassVar[ServiceType]
    state_field: ClassVar[str]
    state_model: ClassVar[type[QualifierState]]
    key_prefix: ClassVar[str]

    def __init__(self, max_questions: int | None = None):
        self.max_questions = max_questions or settings.MAX_QUALIFIER_QUESTIONS

    # -- FSM interface -------------------------------------------------------

    @abstractmethod
    def next_question(self, state: S) -> str | None:
        """Return the next step to ask, or None when nothing is left to ask."""

    @abstractmethod
    def parse_answer(self, step: str, text: str, state: S) -> ParsedAnswer:
        """Parse a reply to ``step``; unrecognized answers never invent values."""

    @abstractmethod
    def evaluate_eligibility(self, state: S) -> bool | None:
        """True/False once enough is known, otherwise None."""

    @abstractmethod
    def should_escalate(self, state: S) -> bool:
        """Whether a human should take over now."""

    # -- Presentation --------------------------------------------------------

    @abstractmethod
    def question_text(self, step: str, state: S) -> str:
        """The single question to ask for ``step`` (fixed option set included)."""

    @abstractmethod
    def apply_answer(self, state: S, step: str, value: Any) -> None:
        """Record a recognized answer on ``state``."""

    @abstractmethod
    def closing_message(self, state: S) -> str:
        """Final message once no more questions will be asked."""

    def prefill(self, state: S, text: str) -> None:
        """Pick up answers volunteered in the opening message."""

    def reprompt_text(self, step: str, state: S) -> str:
        return "Sorry, I didn't catch that. " + self.question_text(step, state)

    # -- State persistence ---------------------------------------------------

    def load_state(self, data: LeadData) -> S:
        state = getattr(data, self.state_field)
        return state.model_copy(deep=True) if state is not None else self.state_model()

    def store_state(self, data: LeadData, state: S) -> None:
        setattr(data, self.state_field, state)

    # -- Turn handling -------------------------------------------------------

    def _question_key(self, number: int) -> str:
        return f"{self.key_prefix}_q{number}"

    def handle(self, state: S, text: str, inbound_id: str | None) -> QualifierTurn:
        """
        Advance the flow by one inbound message.

        At most one question per reply and at most ``max_questions`` in total.
        The same inbound id never advances the state twice.
        """
        if inbound_id and state.last_inbound_id == inbound_id:
            return QualifierTurn(
                state=state,
                reply=state.last_reply,
                question_key=state.last_question_key,
                replayed=True,
            )

        state = state.model_copy(deep=True)
        reprompt = False
        if state.step:
            parsed = self.parse_answer(state.step, text, state)
            if parsed.recognized:
                self.apply_answer(state, state.step, parsed.value)
                state.step = None
            else:
                reprompt = True
        elif not state.completed and state.questions_asked == 0:
            self.prefill(state, text)

        state.likely_eligible = self.evaluate_eligibility(state)
        escalate = not state.escalated and self.should_escalate(state)
        if escalate:
            state.escalated = True

        next_step = None
        if not state.escalated and state.questions_asked < self.max_questions:
            next_step = state.step if reprompt else self.next_question(state)

        if next_step:
            state.step = next_step
            state.questions_asked += 1
            reply = (
                self.reprompt_text(next_step, state)
                if reprompt
                else self.question_text(next_step, state)
            )
            question_key = self._question_key(state.questions_asked)
        elif not state.completed:
            state.step = None
            state.completed = True
            reply = self.closing_message(state)
            question_key = f"{self.key_prefix}_done"
        else:
            reply = None
            question_key = None

        state.last_inbound_id = inbound_id
        state.last_reply = reply
        state.last_question_key = question_key
        return QualifierTurn(state=state, reply=reply, question_key=question_key, escalate=escalate)
