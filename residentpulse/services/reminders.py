"""Time-driven reminders: member nudges at day 10/20, admin notices before launch."""
import json
import math
from datetime import datetime, timedelta
from typing import List, Optional

from flask import current_app

from residentpulse.extensions import db
from residentpulse.models import BoardMember, Community, InvitationLog, SurveyRound, SurveySession
from residentpulse.models.invitation_log import (
    KIND_INVITATION,
    KIND_REMINDER_10,
    KIND_REMINDER_20,
    UNDELIVERABLE,
)
from residentpulse.models.survey_round import ROUND_IN_PROGRESS, ROUND_PLANNED
from residentpulse.utils.helpers import paced, utcnow
from .notifications import notify_round_approaching, send_reminder

APPROACHING_WINDOW_DAYS = 14

# (days since launch, flag column, log kind)
REMINDER_STAGES = (
    (10, "reminder_10_sent", KIND_REMINDER_10),
    (20, "reminder_20_sent", KIND_REMINDER_20),
)


def days_remaining(closes_at: datetime, now: datetime) -> int:
    return max(1, math.ceil((closes_at - now).total_seconds() / 86400))


def _latest_delivery_status(round_id: int) -> dict:
    """user_id -> most recent webhook delivery status seen for the round."""
    rows = (
        InvitationLog.query.filter(
            InvitationLog.round_id == round_id,
            InvitationLog.delivery_status.isnot(None),
        )
        .order_by(InvitationLog.delivery_updated_at, InvitationLog.id)
        .all()
    )
    latest = {}
    for row in rows:
        latest[row.user_id] = row.delivery_status
    return latest


def reminder_recipients(r: SurveyRound) -> List[BoardMember]:
    """Members sent an invitation for the round who are still reachable and have not responded."""
    invited_ids = {
        uid for (uid,) in db.session.query(InvitationLog.user_id).filter(
            InvitationLog.round_id == r.id,
            InvitationLog.kind == KIND_INVITATION,
            InvitationLog.email_status == "sent",
            InvitationLog.user_id.isnot(None),
        )
    }
    if not invited_ids:
        return []

    delivery = _latest_delivery_status(r.id)
    responded = {
        uid for (uid,) in db.session.query(SurveySession.user_id).filter(
            SurveySession.round_id == r.id,
            SurveySession.completed.is_(True),
            SurveySession.user_id.isnot(None),
        )
    }
    inactive_ids = {
        cid for (cid,) in db.session.query(Community.id).filter(
            Community.client_id == r.client_id, Community.status != "active"
        )
    }
    inactive_names = {
        name for (name,) in db.session.query(Community.community_name).filter(
            Community.client_id == r.client_id, Community.status != "active"
        )
    }

    members = (
        BoardMember.query.filter(BoardMember.id.in_(invited_ids), BoardMember.client_id == r.client_id)
        .order_by(BoardMember.id)
        .all()
    )
    out = []
    for m in members:
        if m.id in responded or delivery.get(m.id) in UNDELIVERABLE:
            continue
        if m.community_id in inactive_ids or (m.community_id is None and m.community_name in inactive_names):
            continue
        if not m.invitation_token:
            continue
        out.append(m)
    return out


def _send_round_reminders(r: SurveyRound, kind: str, now: datetime) -> dict:
    recipients = reminder_recipients(r)
    remaining = days_remaining(r.closes_at, now)
    delay = float(current_app.config.get("INVITE_SEND_DELAY_SECONDS", 0.5))
    sent = failed = 0
    for member in paced(recipients, delay):
        entry = InvitationLog(
            client_id=r.client_id,
            round_id=r.id,
            user_id=member.id,
            email=member.email,
            kind=kind,
        )
        try:
            entry.provider_msg_id = send_reminder(member, member.invitation_token, days_remaining=remaining, survey_round=r)
            entry.email_status = "sent"
            sent += 1
        except Exception as exc:
            db.session.rollback()
            entry.email_status = "failed"
            entry.error_message = str(exc)
            failed += 1
        db.session.add(entry)
        db.session.commit()
        current_app.logger.info(json.dumps({
            "event": "reminder_send", "round_id": r.id, "user_id": member.id,
            "kind": kind, "outcome": entry.email_status,
        }))
    return {"round_id": r.id, "kind": kind, "sent": sent, "failed": failed}


def send_reminders(now: Optional[datetime] = None) -> List[dict]:
    now = now or utcnow()
    report = []
    for days, flag, kind in REMINDER_STAGES:
        due = (
            SurveyRound.query.filter(
                SurveyRound.status == ROUND_IN_PROGRESS,
                getattr(SurveyRound, flag).is_(False),
                SurveyRound.launched_at <= now - timedelta(days=days),
                SurveyRound.closes_at > now,
            )
            .order_by(SurveyRound.id)
            .all()
        )
        for r in due:
            round_id = r.id
            try:
                report.append(_send_round_reminders(r, kind, now))
            except Exception as exc:
                db.session.rollback()
                current_app.logger.error(json.dumps({
                    "event": "reminder_batch_failed", "round_id": round_id, "kind": kind, "error": str(exc),
                }))
            r = db.session.get(SurveyRound, round_id)
            setattr(r, flag, True)
            db.session.commit()
    return report


def send_approaching_reminders(now: Optional[datetime] = None) -> List[dict]:
    """Admin notices for planned rounds: 14 days out and on the day itself. Each fires once."""
    today = (now or utcnow()).date()
    horizon = today + timedelta(days=APPROACHING_WINDOW_DAYS)
    report = []

    upcoming = (
        SurveyRound.query.filter(
            SurveyRound.status == ROUND_PLANNED,
            SurveyRound.admin_reminder_14_sent.is_(False),
            SurveyRound.scheduled_date > today,
            SurveyRound.scheduled_date <= horizon,
        )
        .order_by(SurveyRound.id)
        .all()
    )
    due_today = (
        SurveyRound.query.filter(
            SurveyRound.status == ROUND_PLANNED,
            SurveyRound.admin_reminder_0_sent.is_(False),
            SurveyRound.scheduled_date <= today,
        )
        .order_by(SurveyRound.id)
        .all()
    )
    batches = [(r, "admin_reminder_14_sent") for r in upcoming] + [(r, "admin_reminder_0_sent") for r in due_today]
    for r, flag in batches:
        round_id = r.id
        days_until = max(0, (r.scheduled_date - today).days)
        try:
            notify_round_approaching(round_id, days_until)
            r = db.session.get(SurveyRound, round_id)
            setattr(r, flag, True)
            db.session.commit()
            report.append({"round_id": round_id, "notice": flag, "days_until": days_until})
        except Exception as exc:
            db.session.rollback()
            current_app.logger.error(json.dumps({
                "event": "approaching_notice_failed", "round_id": round_id, "error": str(exc),
            }))
    return report
