"""Templated outbound messages.

Member-facing sends (invitation, reminder) raise ExternalServiceError so the
caller can log the attempt. Admin notices go to every admin of the client;
a failure for one admin is logged and the rest still go out.
"""
import json
from typing import Optional

from flask import current_app

from residentpulse.models import (
    BoardMember,
    Client,
    ClientAdmin,
    CriticalAlert,
    SurveyRound,
    SurveySession,
)
from . import email as mailer
from .errors import ServiceError


def _company_name(client_id: int) -> str:
    client = Client.query.filter_by(id=client_id).one_or_none()
    return client.company_name if client else "your management company"


def send_invitation(member: BoardMember, token: str, survey_round: SurveyRound) -> Optional[str]:
    company = member.management_company or _company_name(member.client_id)
    ctx = {
        "first_name": member.first_name or "Board Member",
        "community_name": member.community_name or "your community",
        "company_name": company,
        "round_number": survey_round.round_number,
        "closes_at": survey_round.closes_at,
        "action_url": mailer.survey_url(token),
    }
    return mailer.send_email(
        to_email=member.email,
        subject=f"Your Feedback Matters, {member.first_name or 'Board Member'}",
        template="invitation",
        context=ctx,
        client_id=member.client_id,
    )


def send_reminder(member: BoardMember, token: str, *, days_remaining: int, survey_round: SurveyRound) -> Optional[str]:
    company = member.management_company or _company_name(member.client_id)
    ctx = {
        "first_name": member.first_name or "Board Member",
        "community_name": member.community_name or "your community",
        "company_name": company,
        "round_number": survey_round.round_number,
        "days_remaining": days_remaining,
        "action_url": mailer.survey_url(token),
    }
    return mailer.send_email(
        to_email=member.email,
        subject=f"Friendly reminder: Your Feedback Matters, {member.first_name or 'Board Member'}",
        template="reminder",
        context=ctx,
        client_id=member.client_id,
    )


def _notify_admins(client_id: int, subject: str, template: str, context: dict) -> int:
    admins = ClientAdmin.query.filter_by(client_id=client_id).order_by(ClientAdmin.id).all()
    ctx = dict(context, company_name=_company_name(client_id), dashboard_url=mailer.absolute_url("admin"))
    sent = 0
    for admin in admins:
        try:
            mailer.send_email(
                to_email=admin.email,
                subject=subject,
                template=template,
                context=dict(ctx, admin_name=admin.first_name or "there"),
                client_id=client_id,
            )
            sent += 1
        except ServiceError as exc:
            current_app.logger.warning(json.dumps({
                "event": "admin_notify", "template": template, "client_id": client_id,
                "to": admin.email, "outcome": "failed", "error": exc.message,
            }))
    return sent


def notify_round_launched(round_id: int, sent: int, failed: int) -> int:
    r = SurveyRound.query.filter_by(id=round_id).one()
    return _notify_admins(
        r.client_id,
        f"Round {r.round_number} launched — {r.members_invited or 0} invitations sent",
        "round_launched",
        {"round_number": r.round_number, "members_invited": r.members_invited or 0,
         "sent": sent, "failed": failed, "closes_at": r.closes_at},
    )


def notify_round_concluded(round_id: int) -> int:
    r = SurveyRound.query.filter_by(id=round_id).one()
    responses = SurveySession.query.filter_by(round_id=r.id, completed=True).count()
    invited = r.members_invited or 0
    rate = round(responses / invited * 100) if invited else 0
    return _notify_admins(
        r.client_id,
        f"Round {r.round_number} complete — {rate}% response rate",
        "round_concluded",
        {"round_number": r.round_number, "total_responses": responses, "total_invited": invited, "response_rate": rate},
    )


def notify_round_approaching(round_id: int, days_until: int) -> int:
    r = SurveyRound.query.filter_by(id=round_id).one()
    if days_until > 0:
        subject = f"Round {r.round_number} is scheduled in {days_until} days"
    else:
        subject = f"Round {r.round_number} is scheduled to launch today"
    return _notify_admins(
        r.client_id,
        subject,
        "round_approaching",
        {"round_number": r.round_number, "scheduled_date": r.scheduled_date, "days_until": days_until},
    )


def notify_new_response(session_id: int) -> int:
    s = SurveySession.query.filter_by(id=session_id).one()
    if s.round_id is None:
        return 0
    r = SurveyRound.query.filter_by(id=s.round_id).one()
    total = SurveySession.query.filter_by(round_id=r.id, completed=True).count()
    invited = r.members_invited or 0
    member = BoardMember.query.filter_by(id=s.user_id).one_or_none() if s.user_id else None
    name = member.full_name if member else s.email
    return _notify_admins(
        s.client_id,
        f"New response — Round {r.round_number} ({total}/{invited})",
        "new_response",
        {"round_number": r.round_number, "respondent_name": name, "community_name": s.community_name,
         "total_responses": total, "total_invited": invited},
    )


def notify_critical_alert(alert_id: int) -> int:
    alert = CriticalAlert.query.filter_by(id=alert_id).one()
    s = SurveySession.query.filter_by(id=alert.session_id).one_or_none()
    label = alert.alert_type.replace("_", " ")
    return _notify_admins(
        alert.client_id,
        f"Critical alert: {label} ({alert.severity})",
        "critical_alert",
        {"alert_type": label, "severity": alert.severity, "description": alert.description,
         "respondent_email": s.email if s else None,
         "community_name": s.community_name if s else None},
    )
