"""Maps a lead's service type to the qualifier that handles it."""

from __future__ import annotations

from replyflow.db.enums import ServiceType
from replyflow.services.qualifiers.base import Qualifier
from replyflow.services.qualifiers.golden_visa import GoldenVisaQualifier

QUALIFIERS: dict[ServiceType, type[Qualifier]] = {
    ServiceType.GOLDEN_VISA: GoldenVisaQualifier,
}


def get_qualifier(service_type: str | ServiceType | None) -> Qualifier | None:
    """Return a qualifier for ``service_type``, or None when no flow applies."""
    if not service_type:
        return None
    try:
        service = ServiceType(service_type)
    except ValueError:
        return None
    qualifier_cls = QUALIFIERS.get(service)
    return qualifier_cls() if qualifier_cls else None
