"""Expiry and renewal enums."""

from enum import Enum


class ExpiryItemType(str, Enum):
    """Tracked documents/permits."""

    VISA_EXPIRY = "visa_expiry"
    EMIRATES_ID_EXPIRY = "emirates_id_expiry"
    PASSPORT_EXPIRY = "passport_expiry"
    TRADE_LICENSE_EXPIRY = "trade_license_expiry"
    ESTABLISHMENT_CARD_EXPIRY = "establishment_card_expiry"
    INSURANCE_EXPIRY = "insurance_expiry"
    DOCUMENT_EXPIRY = "document_expiry"  # Expiry mentioned without a document type


class RenewalStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    RENEWED = "renewed"
    NOT_RENEWING = "not_renewing"


ACTIVE_RENEWAL_STATUSES = (RenewalStatus.PENDING, RenewalStatus.IN_PROGRESS)


class RenewalSkipReason(str, Enum):
    """Machine-readable reasons a renewal candidate was not sent."""

    NO_STAGE = "no_stage"
    ALREADY_HANDLED = "already_handled"
    RATE_LIMITED = "rate_limited"
    MISSING_TEMPLATE = "missing_template"
    MISSING_VARIABLES = "missing_variables"
    NO_PHONE = "no_phone"
    OUTSIDE_BUSINESS_HOURS = "outside_business_hours"


class AutomationRunStatus(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
