"""Survey round lifecycle: planned -> in_progress -> concluded.

User-facing transitions validate every guard before touching state.
Scheduler-driven batches handle each round on its own; one failure is
logged and the batch moves on.
"""
import json
from datetime import date, datetime, timedelta
from typing import List, Optional

from dateutil.relativedelta import relativedelta
from flask import current_app
from sqlalchemy import func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError

from residentpulse.extensions import db
from residentpulse.models import (
    BoardMember,
    Community,
    InvitationLog,
    RoundCommunitySnapshot,
    SurveyRound,
    SurveySession,
)
from residentpulse.models.invitation_log import KIND_INVITATION
from residentpulse.models.survey_round import ROUND_CONCLUDED, ROUND_IN_PROGRESS, ROUND_PLANNED
from residentpulse.security import entitlements
from residentpulse.utils.helpers import iso, paced, to_date, utcnow
from . import tasks, tokens
from .errors import PreconditionFailed, ValidationError
from .insights import generate_round_insights
from .notifications import notify_round_concluded, notify_round_launched, send_invitation
from .scoping import get_round

FILL_SPACING_DAYS = 30


def _log(event: str, **fields):
    current_app.logger.info(json.dumps({"event": event, **fields}, default=str))


def _parse_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError("first_launch_date must be an ISO date (YYYY-MM-DD)")


def schedule_initial_rounds(client_id: int, first_launch_date) -> List[SurveyRound]:
    if not first_launch_date:
        raise ValidationError("first_launch_date is required")
    start = _parse_date(first_launch_date)
    if SurveyRound.query.filter_by(client_id=client_id).first() is not None:
        raise PreconditionFailed(
            "Survey rounds already scheduled. Use recalculate to adjust.", reason="already_scheduled"
        )
    cadence = entitlements.survey_cadence(client_id)
    months = entitlements.round_interval_months(cadence)
    rounds = [
        SurveyRound(
            client_id=client_id,
            round_number=i + 1,
            scheduled_date=start + relativedelta(months=i * months),
            status=ROUND_PLANNED,
        )
        for i in range(cadence)
    ]
    db.session.add_all(rounds)
    db.session.commit()
    return rounds


def ensure_rounds_match_cadence(client_id: int, now: Optional[datetime] = None) -> int:
    """Top up a short schedule with trailing planned rounds. Returns how many were added."""
    now = now or utcnow()
    existing = SurveyRound.query.filter_by(client_id=client_id).all()
    cadence = entitlements.survey_cadence(client_id)
    if not existing or len(existing) >= cadence:
        return 0

    months = entitlements.round_interval_months(cadence)
    launched = [r for r in existing if r.launched_at is not None]
    anchor = max(r.launched_at for r in launched) if launched else now
    max_number = max(r.round_number for r in existing)
    today = now.date()

    added = 0
    for i in range(len(existing), cadence):
        k = i - len(existing) + 1
        candidate = to_date(anchor + relativedelta(months=months * i))
        if candidate <= today:
            candidate = today + timedelta(days=FILL_SPACING_DAYS * k)
        db.session.add(SurveyRound(
            client_id=client_id,
            round_number=max_number + k,
            scheduled_date=candidate,
            status=ROUND_PLANNED,
        ))
        added += 1
    db.session.commit()
    return added


def _active_members(client_id: int) -> List[BoardMember]:
    return (
        BoardMember.query.filter_by(client_id=client_id, active=True)
        .order_by(BoardMember.id)
        .all()
    )


def launch_round(client_id: int, round_id: int, sent_by: Optional[int] = None, now: Optional[datetime] = None) -> dict:
    r = get_round(client_id, round_id)
    if r.status != ROUND_PLANNED:
        raise PreconditionFailed(f"Cannot launch a round that is {r.status}", reason="round_not_planned")
    other = SurveyRound.query.filter_by(client_id=client_id, status=ROUND_IN_PROGRESS).first()
    if other is not None:
        raise PreconditionFailed(
            "Another survey round is already in progress. Wait for it to conclude before launching a new one.",
            reason="round_in_progress",
        )
    members = _active_members(client_id)
    if not members:
        raise PreconditionFailed(
            "No board members found. Add board members before launching a survey round.", reason="no_members"
        )
    limit = entitlements.member_limit(client_id)
    if limit is not None and len(members) > limit:
        raise PreconditionFailed(
            f"Your plan allows {limit} board members but {len(members)} are active.", reason="member_limit_exceeded"
        )

    now = now or utcnow()
    closes_at = now + timedelta(days=int(current_app.config.get("ROUND_DURATION_DAYS", 30)))
    r.status = ROUND_IN_PROGRESS
    r.launched_at = now
    r.closes_at = closes_at
    r.members_invited = len(members)
    try:
        db.session.commit()
    except IntegrityError:
        # ux_survey_rounds_client_in_progress: a concurrent launch won
        db.session.rollback()
        raise PreconditionFailed(
            "Another survey round is already in progress. Wait for it to conclude before launching a new one.",
            reason="round_in_progress",
        )
    _log("round_launched", client_id=client_id, round_id=r.id, round_number=r.round_number, members=len(members))

    sent = failed = 0
    delay = float(current_app.config.get("INVITE_SEND_DELAY_SECONDS", 0.5))
    for member in paced(members, delay):
        token = tokens.generate_invitation(member.id, r.id)
        member.invitation_token = token
        member.invitation_token_expires = closes_at
        member.last_invited_at = now
        db.session.commit()

        entry = InvitationLog(
            client_id=client_id,
            round_id=r.id,
            user_id=member.id,
            email=member.email,
            kind=KIND_INVITATION,
            sent_by=sent_by,
        )
        try:
            entry.provider_msg_id = send_invitation(member, token, r)
            entry.email_status = "sent"
            sent += 1
        except Exception as exc:
            db.session.rollback()
            entry.email_status = "failed"
            entry.error_message = str(exc)
            failed += 1
        db.session.add(entry)
        db.session.commit()
        _log("invitation_send", round_id=r.id, user_id=member.id, outcome=entry.email_status)

    tasks.submit("notify_round_launched", notify_round_launched, r.id, sent, failed)
    return {"ok": True, "sent": sent, "failed": failed, "closes_at": iso(closes_at)}


def snapshot_round_communities(r: SurveyRound) -> int:
    """Freeze the tenant's active communities onto the round. Existing pairs are left alone."""
    communities = (
        Community.query.filter_by(client_id=r.client_id, status="active")
        .order_by(Community.id)
        .all()
    )
    if not communities:
        return 0
    rows = [
        dict(
            round_id=r.id,
            community_id=c.id,
            community_name=c.community_name,
            contract_value=c.contract_value,
            community_manager_name=c.community_manager_name,
            property_type=c.property_type,
            number_of_units=c.number_of_units,
            snapshotted_at=utcnow(),
        )
        for c in communities
    ]
    dialect = db.session.get_bind().dialect.name
    insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
    stmt = insert(RoundCommunitySnapshot).values(rows).on_conflict_do_nothing(
        index_elements=["round_id", "community_id"]
    )
    result = db.session.execute(stmt)
    return result.rowcount or 0


def _conclude(r: SurveyRound, now: datetime, trigger: str) -> SurveyRound:
    if r.status != ROUND_IN_PROGRESS:
        raise PreconditionFailed(f"Cannot close a round that is {r.status}", reason="round_not_in_progress")
    r.status = ROUND_CONCLUDED
    r.concluded_at = now
    snapshot_round_communities(r)
    db.session.commit()
    _log("round_concluded", client_id=r.client_id, round_id=r.id, round_number=r.round_number, trigger=trigger)

    tasks.submit("notify_round_concluded", notify_round_concluded, r.id)
    tasks.submit("round_insights", generate_round_insights, r.client_id, r.id)
    return r


def close_round(client_id: int, round_id: int, now: Optional[datetime] = None) -> SurveyRound:
    """Admin closes a round before its close date."""
    return _conclude(get_round(client_id, round_id), now or utcnow(), trigger="manual")


def auto_conclude(r: SurveyRound, now: Optional[datetime] = None) -> SurveyRound:
    return _conclude(r, now or utcnow(), trigger="expired")


def conclude_expired_rounds(now: Optional[datetime] = None) -> dict:
    now = now or utcnow()
    expired = (
        SurveyRound.query.filter(
            SurveyRound.status == ROUND_IN_PROGRESS,
            SurveyRound.closes_at <= now,
        )
        .order_by(SurveyRound.id)
        .all()
    )
    concluded, errors = [], []
    for r in expired:
        round_id = r.id
        try:
            auto_conclude(r, now)
            concluded.append(round_id)
        except Exception as exc:
            db.session.rollback()
            errors.append(round_id)
            current_app.logger.error(json.dumps({"event": "round_conclude_failed", "round_id": round_id, "error": str(exc)}))
    return {"concluded": concluded, "errors": errors}


def _not_before_today(candidate: date, today: date, k: int) -> date:
    """A slot already behind us moves to today + 30*k days (k counts from 1)."""
    if candidate <= today:
        return today + timedelta(days=FILL_SPACING_DAYS * k)
    return candidate


def recalculate_cadence(client_id: int, now: Optional[datetime] = None) -> List[SurveyRound]:
    """Replace every planned round so the schedule matches the current cadence."""
    today = (now or utcnow()).date()
    planned_q = SurveyRound.query.filter_by(client_id=client_id, status=ROUND_PLANNED)
    first_planned = planned_q.order_by(SurveyRound.scheduled_date).first()
    fallback_start = first_planned.scheduled_date if first_planned else None
    planned_q.delete(synchronize_session="fetch")
    db.session.flush()

    cadence = entitlements.survey_cadence(client_id)
    months = entitlements.round_interval_months(cadence)
    anchor_round = (
        SurveyRound.query.filter(
            SurveyRound.client_id == client_id,
            SurveyRound.status.in_((ROUND_IN_PROGRESS, ROUND_CONCLUDED)),
        )
        .order_by(SurveyRound.round_number.desc())
        .first()
    )
    if anchor_round is not None:
        anchor = to_date(anchor_round.closes_at or anchor_round.scheduled_date)
        remaining = cadence - SurveyRound.query.filter_by(client_id=client_id).count()
        for i in range(max(0, remaining)):
            db.session.add(SurveyRound(
                client_id=client_id,
                round_number=anchor_round.round_number + 1 + i,
                scheduled_date=_not_before_today(anchor + relativedelta(months=(i + 1) * months), today, i + 1),
                status=ROUND_PLANNED,
            ))
    elif fallback_start is not None:
        for i in range(cadence):
            db.session.add(SurveyRound(
                client_id=client_id,
                round_number=i + 1,
                scheduled_date=_not_before_today(fallback_start + relativedelta(months=i * months), today, i + 1),
                status=ROUND_PLANNED,
            ))
    db.session.commit()
    db.session.expire_all()
    return SurveyRound.query.filter_by(client_id=client_id).order_by(SurveyRound.round_number).all()


def update_cadence(client_id: int, cadence, now: Optional[datetime] = None) -> List[SurveyRound]:
    if isinstance(cadence, bool) or cadence not in entitlements.ALLOWED_CADENCES:
        raise ValidationError("Survey cadence must be 2 or 4")
    sub = entitlements.active_subscription(client_id)
    if sub is None:
        raise PreconditionFailed("An active subscription is required to change cadence", reason="no_subscription")
    ceiling = entitlements.cadence_ceiling(client_id)
    if cadence > ceiling:
        raise PreconditionFailed(
            f"Your plan only supports up to {ceiling} survey rounds per year. Please upgrade to increase cadence.",
            reason="plan_limit",
        )
    sub.survey_cadence = cadence
    db.session.commit()
    return recalculate_cadence(client_id, now=now)


def list_rounds(client_id: int, now: Optional[datetime] = None) -> List[dict]:
    ensure_rounds_match_cadence(client_id, now=now)
    rounds = SurveyRound.query.filter_by(client_id=client_id).order_by(SurveyRound.round_number).all()
    ids = [r.id for r in rounds]
    completed = dict(
        db.session.query(SurveySession.round_id, func.count(SurveySession.id))
        .filter(SurveySession.round_id.in_(ids), SurveySession.completed.is_(True))
        .group_by(SurveySession.round_id)
        .all()
    ) if ids else {}
    invited = dict(
        db.session.query(InvitationLog.round_id, func.count(func.distinct(InvitationLog.user_id)))
        .filter(
            InvitationLog.round_id.in_(ids),
            InvitationLog.kind == KIND_INVITATION,
            InvitationLog.email_status == "sent",
        )
        .group_by(InvitationLog.round_id)
        .all()
    ) if ids else {}
    out = []
    for r in rounds:
        row = r.to_dict()
        row["responses_completed"] = completed.get(r.id, 0)
        row["invitations_sent"] = invited.get(r.id, 0)
        out.append(row)
    return out
