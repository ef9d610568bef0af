from datetime import date, datetime

import pytest
from conftest import make_community
from residentpulse.extensions import db
from residentpulse.models import CriticalAlert, Message, SurveyRound, SurveySession
from residentpulse.services import reporting, rounds
from residentpulse.services.errors import NotFound, ValidationError


@pytest.fixture()
def round_data(ctx, tenant):
    oak = make_community(tenant.client_id, "Oak Ridge", community_manager_name="Kim", property_type="condo")
    pine = make_community(tenant.client_id, "Pine Hollow", community_manager_name="Lou", property_type="townhome")
    r = SurveyRound(client_id=tenant.client_id, round_number=1, scheduled_date=date(2026, 3, 2),
                    status="concluded", launched_at=datetime(2026, 3, 2), members_invited=5)
    db.session.add(r)
    db.session.flush()
    rows = [
        (oak, 9, True), (oak, 6, True),
        (pine, 10, True), (pine, 9, True), (pine, 8, False),
        (None, 7, False), (pine, None, False),
    ]
    for i, (community, score, completed) in enumerate(rows):
        db.session.add(SurveySession(
            client_id=tenant.client_id, round_id=r.id, email=f"r{i}@x.test", nps_score=score, completed=completed,
            community_id=community.id if community else None,
            community_name=community.community_name if community else None,
        ))
    db.session.flush()
    rounds.snapshot_round_communities(r)
    db.session.commit()
    return r, oak, pine


def test_community_cohorts_use_lower_median(round_data, tenant):
    r, _, _ = round_data
    assert reporting.community_cohorts(tenant.client_id, r.id) == [
        {"name": "Oak Ridge", "responses": 2, "median": 6, "cohort": "detractor", "nps": 0},
        {"name": "Pine Hollow", "responses": 3, "median": 9, "cohort": "promoter", "nps": 67},
    ]


def test_rollups_read_the_round_snapshot(round_data, tenant):
    r, oak, _ = round_data
    oak.community_manager_name = "Zed"
    db.session.commit()

    by_manager = reporting.rollup_by_field(tenant.client_id, r.id, "community_manager_name")
    assert [(g["value"], g["responses"], g["nps"]) for g in by_manager] == [
        ("Kim", 2, 0), ("Lou", 3, 67), ("Unassigned", 1, 0),
    ]
    by_type = reporting.rollup_by_field(tenant.client_id, r.id, "property_type")
    assert [g["value"] for g in by_type] == ["Unassigned", "condo", "townhome"]

    with pytest.raises(ValidationError):
        reporting.rollup_by_field(tenant.client_id, r.id, "contract_value")


def test_round_dashboard(round_data, tenant):
    r, _, _ = round_data
    s = SurveySession.query.filter_by(email="r0@x.test").one()
    db.session.add(Message(session_id=s.id, role="user", content="Sprinklers sprinklers flooding"))
    db.session.add(CriticalAlert(client_id=tenant.client_id, round_id=r.id, session_id=s.id,
                                 alert_type="safety_concern", severity="high", description="Flooding"))
    db.session.commit()

    data = reporting.round_dashboard(tenant.client_id, r.id)
    assert data["nps"] == {"nps": 33, "promoters": 3, "passives": 2, "detractors": 1, "total": 6}
    assert data["score_distribution"][9] == 2
    assert data["responses_completed"] == 4
    assert data["response_rate"] == 80
    assert len(data["sessions"]) == 6
    assert data["word_frequencies"][0] == {"word": "sprinklers", "count": 2}
    assert [a["alert_type"] for a in data["alerts"]] == ["safety_concern"]
    assert data["insights"] is None


def test_dashboard_prefers_stored_words_once_concluded(round_data, tenant):
    r, _, _ = round_data
    r.word_frequencies = [{"word": "stored", "count": 9}]
    db.session.commit()
    assert reporting.round_dashboard(tenant.client_id, r.id)["word_frequencies"] == [{"word": "stored", "count": 9}]


def test_dashboard_is_tenant_scoped(round_data):
    r, _, _ = round_data
    with pytest.raises(NotFound):
        reporting.round_dashboard(r.client_id + 1000, r.id)


def test_nps_trend_skips_planned_rounds(round_data, tenant):
    r, _, _ = round_data
    live = SurveyRound(client_id=tenant.client_id, round_number=2, scheduled_date=date(2026, 9, 2),
                       status="in_progress", launched_at=datetime(2026, 9, 2))
    db.session.add(live)
    db.session.add(SurveyRound(client_id=tenant.client_id, round_number=3, scheduled_date=date(2027, 3, 2)))
    db.session.flush()
    db.session.add(SurveySession(client_id=tenant.client_id, round_id=live.id, email="z@x.test", nps_score=10))
    db.session.commit()

    trend = reporting.nps_trend(tenant.client_id)
    assert [(t["round_number"], t["nps"], t["total"]) for t in trend] == [(1, 33, 6), (2, 100, 1)]
    assert trend[1]["launched_at"] == "2026-09-02T00:00:00"
