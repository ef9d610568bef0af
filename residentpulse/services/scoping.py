"""Tenant-scoped lookups.

A row that exists under another client is reported as NotFound, the same as
a row that does not exist at all.
"""
from typing import Optional

from residentpulse.extensions import db
from residentpulse.models import CriticalAlert, Setting, SurveyRound, SurveySession
from .errors import NotFound


def get_round(client_id: int, round_id: int) -> SurveyRound:
    r = SurveyRound.query.filter_by(id=round_id, client_id=client_id).one_or_none()
    if r is None:
        raise NotFound("Round not found")
    return r


def get_session(session_id: int) -> SurveySession:
    s = db.session.get(SurveySession, session_id)
    if s is None:
        raise NotFound("Session not found")
    return s


def get_client_session(client_id: int, session_id: int) -> SurveySession:
    s = SurveySession.query.filter_by(id=session_id, client_id=client_id).one_or_none()
    if s is None:
        raise NotFound("Session not found")
    return s


def get_alert(client_id: int, alert_id: int) -> CriticalAlert:
    a = CriticalAlert.query.filter_by(id=alert_id, client_id=client_id).one_or_none()
    if a is None:
        raise NotFound("Alert not found")
    return a


def get_setting(key: str, client_id: Optional[int]) -> Optional[str]:
    """Tenant value first, then the global row."""
    if client_id is not None:
        row = Setting.query.filter_by(key=key, client_id=client_id).one_or_none()
        if row is not None and row.value:
            return row.value
    row = Setting.query.filter(Setting.key == key, Setting.client_id.is_(None)).one_or_none()
    return row.value if row is not None and row.value else None
