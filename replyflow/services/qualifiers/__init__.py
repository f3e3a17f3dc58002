"""Deterministic per-service qualification flows."""

from replyflow.services.qualifiers.base import ParsedAnswer, Qualifier, QualifierTurn
from replyflow.services.qualifiers.golden_visa import GoldenVisaQualifier
from replyflow.services.qualifiers.registry import get_qualifier
from replyflow.services.qualifiers.safety import apply_reply_safety

__all__ = [
    "GoldenVisaQualifier",
    "ParsedAnswer",
    "Qualifier",
    "QualifierTurn",
    "apply_reply_safety",
    "get_qualifier",
]
