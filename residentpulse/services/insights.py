"""Round insight synthesis.

Two phases, each callable on its own:

1. ``finalize_stale_sessions`` completes and summarizes sessions that were
   rated and discussed but never closed by the resident.
2. ``generate_round_insights`` runs three independent analysis passes in
   parallel over the round's summaries, then one synthesis pass that merges
   them into the stored insight object.

Pass threads only talk to the AI client; all database work stays on the
calling thread.
"""
import json
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

from flask import current_app

from residentpulse.extensions import db
from residentpulse.models import BoardMember, Client, SurveyRound, SurveySession
from residentpulse.models.survey_round import ROUND_CONCLUDED
from residentpulse.utils.helpers import utcnow
from .ai import get_ai_client
from .ai_parsing import Fallback, parse_json_array, parse_json_object
from .errors import PreconditionFailed
from .nps import compute_nps
from .scoping import get_round, get_setting
from .summaries import generate_session_summary
from .word_frequencies import generate_word_frequencies

PASS_MAX_TOKENS = 1500
SYNTHESIS_MAX_TOKENS = 2500
SYNTHESIS_FALLBACK_SUMMARY = "Insights could not be fully synthesized. Please regenerate."

PASS_PROMPTS = {
    "key_findings": """Analyze the survey responses below and identify the KEY FINDINGS: the most important themes, patterns, and insights from this round of board member feedback.

Return a JSON array of 3-6 findings, each with:
- "finding": A clear, specific statement of the finding
- "evidence": Brief supporting evidence from the responses
- "severity": "positive" | "neutral" | "concerning" | "critical"

Only output valid JSON array, no other text.

{context}""",
    "recommended_actions": """Analyze the survey responses below and generate RECOMMENDED ACTIONS: specific, prioritized things the management company should consider implementing based on this feedback.

Return a JSON array of 3-6 actions, each with:
- "action": A specific, actionable recommendation
- "priority": "high" | "medium" | "low"
- "impact": Brief description of expected impact if implemented
- "rationale": Why this action matters based on the feedback

Only output valid JSON array, no other text.

{context}""",
    "cam_ascent_callouts": """Analyze the survey responses below and identify areas where CAM Ascent (a property management consulting firm) could provide professional assistance. These should be items where expert consulting adds clear value beyond what the management company might do on their own.

Focus on: process improvement, board communication frameworks, financial management best practices, vendor management, compliance, strategic planning.

Return a JSON array of 1-4 callouts, each with:
- "area": The area of opportunity
- "opportunity": What the consulting engagement would address
- "suggested_service": A brief description of how CAM Ascent could help

Only output valid JSON array, no other text.

{context}""",
}

SYNTHESIS_PROMPT = """You are producing the FINAL synthesis of a survey round analysis for a property management company. Three independent analyses were run. Combine them into a single, authoritative output.

INDEPENDENT ANALYSIS RESULTS:
Key Findings: {findings}
Recommended Actions: {actions}
CAM Ascent Callouts: {callouts}

ORIGINAL CONTEXT:
{context}

Produce a final JSON object with these fields:
1. "executive_summary": A 2-4 sentence narrative overview of what this round revealed
2. "key_findings": Array of the most important findings (deduplicated, refined). Each: {{"finding", "evidence", "severity"}}
3. "recommended_actions": Array of prioritized actions (deduplicated, refined). Each: {{"action", "priority", "impact", "rationale"}}
4. "cam_ascent_callouts": Array of consulting opportunities (deduplicated, refined). Each: {{"area", "opportunity", "suggested_service"}}

Deduplicate overlapping items. Prioritize clarity and actionability. Only output valid JSON, no other text."""


def finalize_stale_sessions(client_id: int, round_id: int) -> List[int]:
    """Complete and summarize rated sessions with at least 2 resident messages."""
    get_round(client_id, round_id)
    candidates = (
        SurveySession.query.filter(
            SurveySession.round_id == round_id,
            SurveySession.client_id == client_id,
            SurveySession.completed.is_(False),
            SurveySession.nps_score.isnot(None),
        )
        .order_by(SurveySession.id)
        .all()
    )
    finalized = []
    for s in candidates:
        if s.user_message_count() < 2:
            continue
        session_id = s.id
        s.completed = True
        db.session.commit()
        try:
            generate_session_summary(session_id)
        except Exception as exc:
            db.session.rollback()
            current_app.logger.warning(json.dumps({
                "event": "stale_session_summary_failed", "session_id": session_id, "error": str(exc),
            }))
        finalized.append(session_id)
    if finalized:
        current_app.logger.info(json.dumps({"event": "stale_sessions_finalized", "round_id": round_id, "count": len(finalized)}))
    return finalized


def _respondent_name(s: SurveySession, members: dict) -> str:
    m = members.get(s.user_id)
    return m.full_name if m else s.email


def build_context(client: Optional[Client], supplement: Optional[str], sessions: List[SurveySession],
                  members: dict, has_previous: bool) -> str:
    scores = [s.nps_score for s in sessions if s.nps_score is not None]
    breakdown = compute_nps(scores)
    avg = f"{sum(scores) / len(scores):.1f}" if scores else "N/A"
    lines = [
        f"Company: {client.company_name if client else 'Unknown'}",
    ]
    if supplement:
        lines.append(f"Company Context: {supplement}")
    lines += [
        f"Total Respondents: {len(sessions)}",
        f"NPS Score: {breakdown.nps if breakdown.nps is not None else 'N/A'} "
        f"(Promoters: {breakdown.promoters}, Passives: {breakdown.passives}, Detractors: {breakdown.detractors})",
        f"Average NPS Rating: {avg}",
    ]
    if has_previous:
        lines.append("\nPrevious Round Context: Insights were generated previously. Build on trends, don't repeat.")
    respondents = "\n\n".join(
        f"Respondent {i} ({_respondent_name(s, members)}, {s.community_name or 'Unknown Community'}, NPS: {s.nps_score}):\n{s.summary}"
        for i, s in enumerate(sessions, start=1)
    )
    return "\n".join(lines) + "\n\n--- RESPONDENT SUMMARIES ---\n\n" + respondents


def _run_pass(ai, model: str, name: str, context: str):
    try:
        raw = ai.complete("", [{"role": "user", "content": PASS_PROMPTS[name].format(context=context)}],
                          PASS_MAX_TOKENS, model=model)
    except Exception as exc:
        # worker thread: no app context to log from, the caller logs the fallback
        return Fallback([], reason=str(exc))
    return parse_json_array(raw)


def _synthesize(ai, model: str, context: str, findings, actions, callouts) -> dict:
    fallback = {
        "executive_summary": SYNTHESIS_FALLBACK_SUMMARY,
        "key_findings": findings,
        "recommended_actions": actions,
        "cam_ascent_callouts": callouts,
    }
    prompt = SYNTHESIS_PROMPT.format(
        findings=json.dumps(findings), actions=json.dumps(actions), callouts=json.dumps(callouts), context=context,
    )
    try:
        raw = ai.complete("", [{"role": "user", "content": prompt}], SYNTHESIS_MAX_TOKENS, model=model)
    except Exception as exc:
        current_app.logger.warning(json.dumps({"event": "insight_synthesis_failed", "error": str(exc)}))
        return fallback
    result = parse_json_object(raw, default=fallback)
    if not result.ok:
        return fallback
    merged = dict(result.value)
    for key, value in fallback.items():
        merged.setdefault(key, value)
    return merged


def generate_round_insights(client_id: int, round_id: int, finalize_stale: bool = True) -> Optional[dict]:
    r = get_round(client_id, round_id)
    if finalize_stale:
        finalize_stale_sessions(client_id, round_id)

    sessions = (
        SurveySession.query.filter(
            SurveySession.round_id == round_id,
            SurveySession.client_id == client_id,
            SurveySession.completed.is_(True),
            SurveySession.summary.isnot(None),
        )
        .order_by(SurveySession.id)
        .all()
    )
    if not sessions:
        current_app.logger.info(json.dumps({"event": "insights_skipped", "round_id": round_id, "reason": "no_sessions"}))
        return None

    user_ids = [s.user_id for s in sessions if s.user_id]
    members = {m.id: m for m in BoardMember.query.filter(BoardMember.id.in_(user_ids)).all()} if user_ids else {}
    previous = (
        SurveyRound.query.filter(
            SurveyRound.client_id == client_id,
            SurveyRound.id != round_id,
            SurveyRound.insights_json.isnot(None),
        )
        .first()
    )
    context = build_context(
        db.session.get(Client, client_id),
        get_setting("interview_prompt_supplement", client_id),
        sessions,
        members,
        previous is not None,
    )

    ai = get_ai_client()
    model = current_app.config.get("AI_ANALYSIS_MODEL")
    with ThreadPoolExecutor(max_workers=3, thread_name_prefix="insight-pass") as pool:
        futures = {name: pool.submit(_run_pass, ai, model, name, context) for name in PASS_PROMPTS}
        results = {name: f.result() for name, f in futures.items()}
    for name, result in results.items():
        if not result.ok:
            current_app.logger.warning(json.dumps({"event": "insight_pass_fallback", "round_id": round_id, "pass": name, "reason": result.reason}))

    findings = results["key_findings"].value
    actions = results["recommended_actions"].value
    callouts = results["cam_ascent_callouts"].value
    synthesis = _synthesize(ai, model, context, findings, actions, callouts)

    now = utcnow()
    breakdown = compute_nps(s.nps_score for s in sessions)
    payload = {
        "executive_summary": synthesis.get("executive_summary"),
        "key_findings": synthesis.get("key_findings"),
        "recommended_actions": synthesis.get("recommended_actions"),
        "cam_ascent_callouts": synthesis.get("cam_ascent_callouts"),
        "nps_score": breakdown.nps,
        "response_count": len(sessions),
        "generated_at": now.isoformat(),
        "passes": {"findings": findings, "actions": actions, "callouts": callouts},
    }
    r.insights_json = payload
    r.insights_generated_at = now
    db.session.commit()

    generate_word_frequencies(client_id, round_id)
    current_app.logger.info(json.dumps({
        "event": "insights_generated", "client_id": client_id, "round_id": round_id,
        "response_count": len(sessions), "nps": breakdown.nps,
    }))
    return payload


def regenerate_insights(client_id: int, round_id: int) -> Optional[dict]:
    """Synchronous admin re-run. Stale sessions are left alone."""
    r = get_round(client_id, round_id)
    if r.status != ROUND_CONCLUDED:
        raise PreconditionFailed("Insights can only be generated for concluded rounds", reason="round_not_concluded")
    return generate_round_insights(client_id, round_id, finalize_stale=False)
