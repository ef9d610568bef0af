"""Board-member survey conversations: one AI-moderated turn at a time."""
import json
from typing import Optional

from flask import current_app

from residentpulse.extensions import db
from residentpulse.models import BoardMember, Community, CriticalAlert, Message, SurveyRound, SurveySession
from residentpulse.models.critical_alert import ALERT_TYPES, SEVERITIES
from residentpulse.models.session import ROLE_ASSISTANT, ROLE_USER
from residentpulse.models.survey_round import ROUND_IN_PROGRESS
from residentpulse.utils.helpers import iso, utcnow
from . import tasks, tokens
from .ai import get_ai_client
from .ai_parsing import parse_json_object
from .errors import ExternalServiceError, NotFound, PreconditionFailed, ValidationError
from .notifications import notify_critical_alert, notify_new_response
from .scoping import get_client_session, get_round, get_session, get_setting
from .summaries import generate_session_summary

DEFAULT_SYSTEM_PROMPT = """You are a friendly, professional data scientist conducting an NPS (Net Promoter Score) survey for a residential management company. You are interviewing board of directors members of HOAs and condo associations.

Guidelines:
- Keep every response to 1-2 short sentences. Never exceed 2 sentences. Be direct and conversational, with no filler, no preamble, no restating what they said
- The NPS score has already been collected via the UI widget, do NOT ask for it again
- You will receive the NPS score in the first user message. Acknowledge it in one brief sentence, then ask your first follow-up question in a second sentence
- Ask 3-4 follow-up questions, one at a time, covering these areas:
  1. Why they gave that score and what drove their rating
  2. What the management company does well (communication, responsiveness, financial management, maintenance)
  3. What specific improvements they'd like to see
  4. Any urgent concerns or issues that need immediate attention
- The resident can end the session whenever they want using a button in the UI, so do not rush or cut things short
- If the resident seems done or says goodbye, thank them briefly in one sentence
- Do not use markdown formatting, bullet points, or numbered lists, just plain conversational text
- Never summarize, paraphrase, or echo back what the resident just told you, just move to the next question"""

CHAT_MAX_TOKENS = 300
PRIOR_SESSION_LIMIT = 5

ALERT_MIN_LENGTH = 30
ALERT_MAX_TOKENS = 300
ALERT_SYSTEM_PROMPT = """You screen survey answers from HOA and condo board members for issues a property management company must act on immediately.

Flag a message ONLY when it contains one of:
- contract_termination: explicit intent to terminate, not renew, or replace the management company
- legal_threat: a threat of legal action against the management company itself or its staff
- safety_concern: an active safety emergency (fire, structural failure, gas leak, flooding, violence, injury risk)
- other_critical: any other matter that explicitly demands urgent management attention

Do NOT flag:
- routine legal matters of the community (collections, covenant enforcement, disputes with vendors or contractors, suits against other residents)
- general complaints, frustration, or venting without a concrete threat
- requests for improvement or criticism of service quality

Reply with JSON only, no prose:
{"is_critical": true|false, "alert_type": "contract_termination|legal_threat|safety_concern|other_critical", "severity": "high|critical", "description": "one sentence for the management team"}"""


def _limiter():
    return current_app.extensions["chat_rate_limiter"]


def start_session(
    client_id: int,
    email: str,
    user_id: Optional[int] = None,
    community_name: Optional[str] = None,
    management_company: Optional[str] = None,
) -> SurveySession:
    email = (email or "").strip().lower()
    if not client_id:
        raise ValidationError("client_id is required")
    if not email or "@" not in email:
        raise ValidationError("A valid email is required")

    member = None
    if user_id is not None:
        member = BoardMember.query.filter_by(id=user_id, client_id=client_id).one_or_none()
        if member is None:
            raise NotFound("Board member not found")
    else:
        member = BoardMember.query.filter_by(client_id=client_id, email=email).one_or_none()

    community_name = community_name or (member.community_name if member else None)
    community_id = member.community_id if member and member.community_id else None
    if community_id is None and community_name:
        c = Community.query.filter_by(client_id=client_id, community_name=community_name).one_or_none()
        community_id = c.id if c else None

    active = SurveyRound.query.filter_by(client_id=client_id, status=ROUND_IN_PROGRESS).one_or_none()
    session = SurveySession(
        client_id=client_id,
        round_id=active.id if active else None,
        user_id=member.id if member else None,
        email=email,
        community_name=community_name,
        community_id=community_id,
        management_company=management_company or (member.management_company if member else None),
    )
    db.session.add(session)
    db.session.commit()
    return session


def start_session_from_invitation(token: str) -> SurveySession:
    """Open a session from an emailed survey link."""
    data = tokens.verify_invitation(token or "")
    if data is None:
        raise ValidationError("Invalid invitation link")
    member = BoardMember.query.filter_by(id=data["member_id"], invitation_token=token).one_or_none()
    if member is None:
        raise NotFound("Invitation not found")
    if member.invitation_token_expires and member.invitation_token_expires < utcnow():
        raise PreconditionFailed("This survey link has expired", reason="invitation_expired")
    return start_session(member.client_id, member.email, user_id=member.id)


def set_nps_score(session_id: int, score) -> SurveySession:
    if isinstance(score, bool) or not isinstance(score, int) or not 0 <= score <= 10:
        raise ValidationError("nps_score must be an integer between 0 and 10")
    session = get_session(session_id)
    if session.nps_score is not None and session.nps_score != score:
        raise PreconditionFailed("NPS score is already recorded", reason="score_locked")
    session.nps_score = score
    db.session.commit()
    return session


def compose_system_prompt(session: SurveySession) -> str:
    prompt = get_setting("system_prompt", session.client_id) or DEFAULT_SYSTEM_PROMPT

    supplement = get_setting("interview_prompt_supplement", session.client_id)
    if supplement:
        prompt += "\n\nADDITIONAL CLIENT CONTEXT:\n" + supplement

    prior = (
        SurveySession.query.filter(
            SurveySession.client_id == session.client_id,
            SurveySession.email == session.email,
            SurveySession.id != session.id,
            SurveySession.completed.is_(True),
            SurveySession.summary.isnot(None),
        )
        .order_by(SurveySession.created_at.desc(), SurveySession.id.desc())
        .limit(PRIOR_SESSION_LIMIT)
        .all()
    )
    if prior:
        lines = "\n".join(
            f"- {p.created_at.strftime('%Y-%m-%d')} (NPS: {p.nps_score if p.nps_score is not None else 'N/A'}): {p.summary}"
            for p in prior
        )
        prompt += (
            f"\n\nIMPORTANT: This is a returning resident. They have completed {len(prior)} prior survey(s). "
            "Reference their previous feedback naturally when relevant: acknowledge their history and ask "
            "about progress on past concerns. Do NOT repeat the summaries back verbatim; use them to inform "
            f"your follow-up questions.\n\nPrior session summaries:\n{lines}"
        )
    return prompt


def post_message(session_id, text) -> dict:
    """One conversational turn. Returns {"message": reply, "timestamp": iso}."""
    if not session_id or not isinstance(text, str) or not text.strip():
        raise ValidationError("session_id and message are required")
    _limiter().hit(session_id)
    session = get_session(session_id)

    user_msg = Message(session_id=session.id, role=ROLE_USER, content=text)
    db.session.add(user_msg)
    db.session.commit()

    history = (
        Message.query.filter_by(session_id=session.id)
        .order_by(Message.created_at, Message.id)
        .all()
    )
    try:
        reply = get_ai_client().complete(
            compose_system_prompt(session),
            [{"role": m.role, "content": m.content} for m in history],
            CHAT_MAX_TOKENS,
            model=current_app.config.get("AI_CHAT_MODEL"),
        )
    except ExternalServiceError as exc:
        current_app.logger.error(json.dumps({"event": "chat_reply_failed", "session_id": session.id, "error": exc.message}))
        raise

    assistant_msg = Message(session_id=session.id, role=ROLE_ASSISTANT, content=reply)
    db.session.add(assistant_msg)
    db.session.commit()

    tasks.submit("critical_alert", detect_critical_alert, text, session.id, user_msg.id)
    return {"message": reply, "timestamp": iso(assistant_msg.created_at)}


def detect_critical_alert(message_text: str, session_id: int, source_message_id: Optional[int] = None) -> Optional[CriticalAlert]:
    """Best-effort classifier pass over one resident message. Never raises."""
    if len((message_text or "").strip()) < ALERT_MIN_LENGTH:
        return None
    try:
        session = get_session(session_id)
        raw = get_ai_client().complete(
            ALERT_SYSTEM_PROMPT,
            [{"role": "user", "content": message_text}],
            ALERT_MAX_TOKENS,
            model=current_app.config.get("AI_CHAT_MODEL"),
        )
        verdict = parse_json_object(raw, default={})
        if not verdict.ok or verdict.value.get("is_critical") is not True:
            return None

        alert_type = verdict.value.get("alert_type")
        severity = verdict.value.get("severity")
        alert = CriticalAlert(
            client_id=session.client_id,
            round_id=session.round_id,
            session_id=session.id,
            user_id=session.user_id,
            alert_type=alert_type if alert_type in ALERT_TYPES else "other_critical",
            severity=severity if severity in SEVERITIES else "high",
            description=(verdict.value.get("description") or message_text)[:2000],
            source_message_id=source_message_id,
        )
        db.session.add(alert)
        db.session.commit()
        current_app.logger.warning(json.dumps({
            "event": "critical_alert",
            "client_id": alert.client_id,
            "session_id": alert.session_id,
            "alert_type": alert.alert_type,
            "severity": alert.severity,
        }))
    except Exception as exc:
        db.session.rollback()
        current_app.logger.error(json.dumps({"event": "critical_alert_failed", "session_id": session_id, "error": str(exc)}))
        return None

    tasks.submit("notify_critical_alert", notify_critical_alert, alert.id)
    return alert


def complete_session(session_id) -> SurveySession:
    if not session_id:
        raise ValidationError("session_id is required")
    session = get_session(session_id)
    was_completed = session.completed
    session.completed = True
    db.session.commit()

    if not was_completed:
        if not session.summary:
            tasks.submit("session_summary", generate_session_summary, session.id)
        tasks.submit("notify_new_response", notify_new_response, session.id)
    return session


def find_incomplete_session(client_id: int, email: str) -> Optional[SurveySession]:
    """Latest unfinished session for this address, so a returning resident can pick up where they left off."""
    email = (email or "").strip().lower()
    if not client_id or not email:
        raise ValidationError("client_id and email are required")
    return (
        SurveySession.query.filter_by(client_id=client_id, email=email, completed=False)
        .order_by(SurveySession.created_at.desc(), SurveySession.id.desc())
        .first()
    )


# --- admin corrections ------------------------------------------------------

def delete_session(client_id: int, session_id: int) -> None:
    session = get_client_session(client_id, session_id)
    CriticalAlert.query.filter_by(session_id=session.id).delete(synchronize_session="fetch")
    db.session.delete(session)
    db.session.commit()
    current_app.logger.info(json.dumps({"event": "session_deleted", "client_id": client_id, "session_id": session_id}))


_KEEP = object()


def reassign_session(client_id: int, session_id: int, round_id=_KEEP, member_id=None) -> SurveySession:
    """Move a session to another round of the same client and/or attribute it to a board member.

    round_id None detaches the session from any round; omitted leaves it where it is.
    """
    session = get_client_session(client_id, session_id)
    if round_id is _KEEP:
        round_id = session.round_id
    elif round_id is not None:
        round_id = get_round(client_id, round_id).id
    member = None
    if member_id is not None:
        member = BoardMember.query.filter_by(id=member_id, client_id=client_id).one_or_none()
        if member is None:
            raise NotFound("Board member not found")

    session.round_id = round_id
    CriticalAlert.query.filter_by(session_id=session.id).update({"round_id": round_id}, synchronize_session="fetch")
    if member is not None:
        session.user_id = member.id
        session.email = member.email
        session.community_name = member.community_name
        session.community_id = member.community_id
    db.session.commit()
    current_app.logger.info(json.dumps({
        "event": "session_reassigned", "client_id": client_id, "session_id": session.id,
        "round_id": round_id, "member_id": member.id if member else None,
    }))
    return session
