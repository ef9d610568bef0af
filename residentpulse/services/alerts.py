"""Critical alert review for client admins."""
from typing import List, Optional

from residentpulse.extensions import db
from residentpulse.models import CriticalAlert
from residentpulse.utils.helpers import utcnow
from .scoping import get_alert, get_round


def list_open_alerts(client_id: int) -> List[CriticalAlert]:
    return (
        CriticalAlert.query.filter_by(client_id=client_id, dismissed=False, solved=False)
        .order_by(CriticalAlert.created_at.desc(), CriticalAlert.id.desc())
        .all()
    )


def list_round_alerts(client_id: int, round_id: int) -> List[CriticalAlert]:
    get_round(client_id, round_id)
    return (
        CriticalAlert.query.filter_by(client_id=client_id, round_id=round_id)
        .order_by(CriticalAlert.created_at.desc(), CriticalAlert.id.desc())
        .all()
    )


def dismiss_alert(client_id: int, alert_id: int, reason: Optional[str] = None) -> CriticalAlert:
    alert = get_alert(client_id, alert_id)
    alert.dismissed = True
    alert.dismissed_at = utcnow()
    alert.dismiss_reason = (reason or "").strip() or None
    db.session.commit()
    return alert


def solve_alert(client_id: int, alert_id: int, note: Optional[str] = None) -> CriticalAlert:
    alert = get_alert(client_id, alert_id)
    alert.solved = True
    alert.solved_at = utcnow()
    alert.solve_note = (note or "").strip() or None
    db.session.commit()
    return alert
