from typing import Optional
from residentpulse.models import Subscription

_ACTIVE = {"active", "trialing"}
ALLOWED_CADENCES = (2, 4)
DEFAULT_CADENCE = 2

def active_subscription(client_id: int) -> Optional[Subscription]:
    sub = Subscription.query.filter_by(client_id=client_id).first()
    if sub and sub.status in _ACTIVE:
        return sub
    return None

def survey_cadence(client_id: int) -> int:
    """Rounds per year: chosen cadence, else plan ceiling, else 2."""
    sub = active_subscription(client_id)
    if sub is None:
        return DEFAULT_CADENCE
    return sub.survey_cadence or sub.survey_rounds_per_year or DEFAULT_CADENCE

def cadence_ceiling(client_id: int) -> int:
    sub = active_subscription(client_id)
    return (sub.survey_rounds_per_year if sub else None) or DEFAULT_CADENCE

def member_limit(client_id: int) -> Optional[int]:
    """None means unlimited."""
    sub = active_subscription(client_id)
    return sub.member_limit if sub else None

def round_interval_months(cadence: int) -> int:
    return 3 if cadence == 4 else 6
