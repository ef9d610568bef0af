"""Management-facing session summaries.

Shared by session completion, the stale-session sweep before insights, and
the admin finalize action.
"""
import json
from typing import Optional

from flask import current_app

from residentpulse.extensions import db
from residentpulse.models import SurveySession
from residentpulse.models.session import ROLE_USER
from .ai import get_ai_client
from .errors import PreconditionFailed
from .scoping import get_client_session, get_session

SUMMARY_SYSTEM_PROMPT = (
    "You are an analyst summarizing resident feedback for a property management company. "
    "Write a concise summary (3-5 sentences) highlighting the key themes, concerns, and "
    "actionable insights from this NPS interview. Focus on what matters most to management."
)
SUMMARY_MAX_TOKENS = 300


def render_transcript(session: SurveySession) -> str:
    return "\n".join(
        f"{'Resident' if m.role == ROLE_USER else 'Interviewer'}: {m.content}"
        for m in session.messages
    )


def generate_session_summary(session_id: int) -> Optional[str]:
    """Summarize and persist; None when the session has no messages."""
    session = get_session(session_id)
    if not session.messages:
        return None
    score = session.nps_score if session.nps_score is not None else "N/A"
    summary = get_ai_client().complete(
        SUMMARY_SYSTEM_PROMPT,
        [{"role": "user", "content": f"NPS Score: {score}\n\nTranscript:\n{render_transcript(session)}"}],
        SUMMARY_MAX_TOKENS,
        model=current_app.config.get("AI_ANALYSIS_MODEL"),
    )
    session.summary = summary.strip()
    db.session.commit()
    current_app.logger.info(json.dumps({"event": "session_summarized", "session_id": session.id}))
    return session.summary


def finalize_session(client_id: int, session_id: int) -> SurveySession:
    """Admin finalize: complete an abandoned session and summarize it now."""
    session = get_client_session(client_id, session_id)
    if session.completed:
        raise PreconditionFailed("Session is already completed", reason="already_completed")
    if session.user_message_count() < 2:
        raise PreconditionFailed(
            "Session needs at least 2 resident messages to finalize", reason="not_enough_messages"
        )
    session.completed = True
    db.session.commit()
    generate_session_summary(session.id)
    return session
