"""Dashboard reads over session rows. Nothing here writes."""
from collections import OrderedDict
from typing import List

from residentpulse.models import CriticalAlert, RoundCommunitySnapshot, SurveyRound, SurveySession
from residentpulse.models.survey_round import ROUND_CONCLUDED, ROUND_IN_PROGRESS
from .errors import ValidationError
from .nps import classify_community_cohort, compute_nps, lower_median, score_distribution
from .scoping import get_round
from .word_frequencies import compute_live_word_frequencies, round_user_messages

ROLLUP_FIELDS = ("community_manager_name", "property_type")
UNASSIGNED = "Unassigned"


def _scored_sessions(client_id: int, round_id: int) -> List[SurveySession]:
    return (
        SurveySession.query.filter(
            SurveySession.client_id == client_id,
            SurveySession.round_id == round_id,
            SurveySession.nps_score.isnot(None),
        )
        .order_by(SurveySession.id)
        .all()
    )


def community_cohorts(client_id: int, round_id: int) -> List[dict]:
    get_round(client_id, round_id)
    groups = OrderedDict()
    for s in _scored_sessions(client_id, round_id):
        if s.community_name:
            groups.setdefault(s.community_name, []).append(s.nps_score)
    out = []
    for name in sorted(groups):
        scores = groups[name]
        out.append({
            "name": name,
            "responses": len(scores),
            "median": lower_median(scores),
            "cohort": classify_community_cohort(scores),
            "nps": compute_nps(scores).nps,
        })
    return out


def round_dashboard(client_id: int, round_id: int) -> dict:
    r = get_round(client_id, round_id)
    scored = _scored_sessions(client_id, round_id)
    scores = [s.nps_score for s in scored]
    completed = SurveySession.query.filter_by(client_id=client_id, round_id=round_id, completed=True).count()
    invited = r.members_invited or 0

    words = r.word_frequencies
    if words is None or r.status == ROUND_IN_PROGRESS:
        words = compute_live_word_frequencies(round_user_messages(client_id, round_id))

    alerts = (
        CriticalAlert.query.filter_by(client_id=client_id, round_id=round_id)
        .order_by(CriticalAlert.created_at.desc(), CriticalAlert.id.desc())
        .all()
    )
    return {
        "round": r.to_dict(),
        "nps": compute_nps(scores).to_dict(),
        "score_distribution": score_distribution(scores),
        "responses_completed": completed,
        "response_rate": round(completed / invited * 100) if invited else None,
        "sessions": [s.to_dict() for s in scored],
        "community_cohorts": community_cohorts(client_id, round_id),
        "alerts": [a.to_dict() for a in alerts],
        "word_frequencies": words,
        "insights": r.insights_json,
    }


def nps_trend(client_id: int) -> List[dict]:
    rounds = (
        SurveyRound.query.filter(
            SurveyRound.client_id == client_id,
            SurveyRound.status.in_((ROUND_IN_PROGRESS, ROUND_CONCLUDED)),
        )
        .order_by(SurveyRound.round_number)
        .all()
    )
    out = []
    for r in rounds:
        breakdown = compute_nps(s.nps_score for s in _scored_sessions(client_id, r.id))
        out.append({
            "round_id": r.id,
            "round_number": r.round_number,
            "status": r.status,
            "launched_at": r.launched_at.isoformat() if r.launched_at else None,
            **breakdown.to_dict(),
        })
    return out


def rollup_by_field(client_id: int, round_id: int, field: str) -> List[dict]:
    """NPS grouped by a snapshotted community attribute (manager or property type)."""
    if field not in ROLLUP_FIELDS:
        raise ValidationError(f"field must be one of {', '.join(ROLLUP_FIELDS)}")
    get_round(client_id, round_id)
    snapshots = {
        snap.community_id: snap
        for snap in RoundCommunitySnapshot.query.filter_by(round_id=round_id).all()
    }
    by_name = {snap.community_name: snap for snap in snapshots.values()}

    groups = {}
    for s in _scored_sessions(client_id, round_id):
        snap = snapshots.get(s.community_id) or by_name.get(s.community_name)
        key = (getattr(snap, field) if snap else None) or UNASSIGNED
        groups.setdefault(key, []).append(s.nps_score)
    return [
        {"value": key, "responses": len(scores), **compute_nps(scores).to_dict()}
        for key, scores in sorted(groups.items())
    ]
