"""Lead enums."""

from enum import Enum


class LeadStage(str, Enum):
    """Lead pipeline stages."""

    NEW = "new"
    CONTACTED = "contacted"
    QUALIFIED = "qualified"
    PROPOSAL = "proposal"
    ON_HOLD = "on_hold"
    WON = "won"
    LOST = "lost"


# Stages whose leads are never reused for a new inbound request
CLOSED_LEAD_STAGES = frozenset({LeadStage.WON, LeadStage.LOST, LeadStage.ON_HOLD})


class ServiceType(str, Enum):
    """Services a customer can ask for."""

    FAMILY_VISA = "family_visa"
    GOLDEN_VISA = "golden_visa"
    FREELANCE_VISA = "freelance_visa"
    EMPLOYMENT_VISA = "employment_visa"
    VISIT_VISA = "visit_visa"
    MAINLAND_BUSINESS_SETUP = "mainland_business_setup"
    FREEZONE_BUSINESS_SETUP = "freezone_business_setup"
    PRO_SERVICES = "pro_services"
    VISA_RENEWAL = "visa_renewal"
    EMIRATES_ID = "emirates_id"


BUSINESS_SETUP_SERVICES = frozenset(
    {ServiceType.MAINLAND_BUSINESS_SETUP, ServiceType.FREEZONE_BUSINESS_SETUP}
)

VISA_SERVICES = frozenset(
    {
        ServiceType.FAMILY_VISA,
        ServiceType.GOLDEN_VISA,
        ServiceType.FREELANCE_VISA,
        ServiceType.EMPLOYMENT_VISA,
        ServiceType.VISIT_VISA,
        ServiceType.VISA_RENEWAL,
    }
)
