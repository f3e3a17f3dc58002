"""Reply generation for auto-reply jobs.

A deterministic qualifier flow answers first when one applies to the lead's
service; otherwise the AI provider drafts the reply. Every reply passes the
safety filter before it is staged on the job.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from replyflow.core.config import settings
from replyflow.core.constants import CONSULTATION_TASK_DUE_HOURS
from replyflow.core.structured_logging import build_log_context
from replyflow.db.enums import MessageDirection, NotificationType, TaskType
from replyflow.db.models import Conversation, Lead, Message, OutboundJob
from replyflow.schemas.lead_data import LeadData
from replyflow.services import conversation_service, lead_service, task_service
from replyflow.services.ai_provider import AIProvider, ChatMessage, get_ai_provider
from replyflow.services.errors import ReplyGenerationError
from replyflow.services.qualifiers import apply_reply_safety, get_qualifier

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are the WhatsApp assistant for a UAE business services company \
(visas, Emirates ID, business setup, PRO services).

## Guidelines
- Reply in the customer's language, in at most three short sentences
- Ask at most ONE question per reply
- Never promise approval, outcomes or timelines
- Never claim special access to government offices
- If you are unsure, say a consultant will follow up
"""

# Used when no AI provider is configured
ACKNOWLEDGEMENT_REPLY = (
    "Thank you for your message. A member of our team will get back to you shortly."
)


@dataclass
class ReplyContext:
    """Everything a generator may read while drafting one reply."""

    db: Session
    job: OutboundJob
    conversation: Conversation
    lead: Lead | None
    trigger_message: Message | None
    now: datetime

    @property
    def inbound_text(self) -> str:
        if self.trigger_message is None:
            return ""
        return self.trigger_message.body or ""

    @property
    def inbound_id(self) -> str | None:
        return self.job.trigger_provider_message_id


def _lead_summary(data: LeadData) -> str:
    lines = []
    if data.service:
        lines.append(f"- Requested service: {data.service}")
    if data.nationality:
        lines.append(f"- Nationality: {data.nationality}")
    for expiry in data.expiries:
        lines.append(f"- {expiry.type}: {expiry.expires_on.strftime('%d/%m/%Y')}")
    if data.counts.partners is not None:
        lines.append(f"- Partners: {data.counts.partners}")
    if data.counts.visas is not None:
        lines.append(f"- Visas: {data.counts.visas}")
    if not lines:
        return ""
    return "## Known about this customer\n" + "\n".join(lines)


class ReplyGenerator:
    """Produces the text of one auto-reply."""

    def __init__(self, ai_provider: AIProvider | None = None):
        self.ai_provider = ai_provider if ai_provider is not None else get_ai_provider()

    async def generate(self, context: ReplyContext) -> str:
        reply = self._qualifier_reply(context)
        if reply is None:
            reply = await self._ai_reply(context)

        reply = apply_reply_safety(reply)
        if not reply:
            raise ReplyGenerationError("Reply was empty after the safety filter")
        return reply

    # -------------------------------------------------------------------------
    # Qualifier path
    # -------------------------------------------------------------------------

    def _qualifier_reply(self, context: ReplyContext) -> str | None:
        lead = context.lead
        if lead is None:
            return None
        data = LeadData.from_json(lead.data_json)
        qualifier = get_qualifier(lead.service_type or data.service)
        if qualifier is None:
            return None

        turn = qualifier.handle(qualifier.load_state(data), context.inbound_text, context.inbound_id)
        if not turn.replayed:
            qualifier.store_state(data, turn.state)
            lead_service.save_lead_data(context.db, lead, data)
        if turn.question_key:
            context.conversation.last_question_key = turn.question_key
        if turn.escalate:
            self._escalate(context, lead, qualifier.service.value)
        return turn.reply

    def _escalate(self, context: ReplyContext, lead: Lead, service: str) -> None:
        key = task_service.consultation_task_key(lead.id, service)
        label = service.replace("_", " ").title()
        task_service.create_task_if_absent(
            context.db,
            key,
            title=f"[HIGH PRIORITY] {label} Consultation + Document Verification",
            description="Qualifier marked the customer likely eligible with a near-term timeline.",
            task_type=TaskType.CONSULTATION,
            due_at=context.now + timedelta(hours=CONSULTATION_TASK_DUE_HOURS),
            lead_id=lead.id,
            conversation_id=context.conversation.id,
        )
        task_service.create_notification_if_absent(
            context.db,
            key,
            title=f"{label} lead ready for consultation",
            notification_type=NotificationType.ESCALATION,
            lead_id=lead.id,
            conversation_id=context.conversation.id,
        )
        logger.info(
            "Escalated %s lead to consultation",
            service,
            extra=build_log_context(lead_id=lead.id, conversation_id=context.conversation.id),
        )

    # -------------------------------------------------------------------------
    # AI path
    # -------------------------------------------------------------------------

    def _build_messages(self, context: ReplyContext) -> list[ChatMessage]:
        system = SYSTEM_PROMPT
        if context.lead is not None:
            summary = _lead_summary(LeadData.from_json(context.lead.data_json))
            if summary:
                system += "\n" + summary

        messages = [ChatMessage(role="system", content=system)]
        history = conversation_service.get_recent_messages(
            context.db, context.conversation.id, settings.AI_HISTORY_MESSAGES
        )
        for message in history:
            if not message.body:
                continue
            role = "user" if message.direction == MessageDirection.INBOUND.value else "assistant"
            messages.append(ChatMessage(role=role, content=message.body))
        return messages

    async def _ai_reply(self, context: ReplyContext) -> str:
        if self.ai_provider is None:
            logger.info(
                "No AI provider configured; sending acknowledgement",
                extra=build_log_context(job_id=context.job.id),
            )
            return ACKNOWLEDGEMENT_REPLY

        response = await self.ai_provider.chat(
            self._build_messages(context),
            temperature=settings.AI_TEMPERATURE,
            max_tokens=settings.AI_MAX_TOKENS,
        )
        logger.info(
            "Generated AI reply model=%s tokens=%s",
            response.model,
            response.total_tokens,
            extra=build_log_context(job_id=context.job.id),
        )
        return response.content.strip()
