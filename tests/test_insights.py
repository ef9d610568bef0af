from datetime import date

import pytest
from conftest import make_member
from residentpulse.extensions import db
from residentpulse.models import Message, SurveyRound, SurveySession
from residentpulse.services import insights
from residentpulse.services.errors import ExternalServiceError, PreconditionFailed
from residentpulse.services.summaries import finalize_session


def _round(client_id, status="concluded", number=1):
    r = SurveyRound(client_id=client_id, round_number=number, scheduled_date=date(2026, 1, 5), status=status)
    db.session.add(r)
    db.session.commit()
    return r


def _session(client_id, round_id, email, nps=None, completed=False, summary=None, user_messages=0, **kw):
    s = SurveySession(client_id=client_id, round_id=round_id, email=email, nps_score=nps,
                      completed=completed, summary=summary, **kw)
    db.session.add(s)
    db.session.flush()
    for i in range(user_messages):
        db.session.add(Message(session_id=s.id, role="user", content=f"Resident answer {i} about the pool gate"))
        db.session.add(Message(session_id=s.id, role="assistant", content="Thanks, tell me more."))
    db.session.commit()
    return s


def test_stale_sessions_are_finalized_and_counted(ctx, tenant, fake_ai):
    r = _round(tenant.client_id)
    _session(tenant.client_id, r.id, "done@x.test", nps=9, completed=True, summary="Happy.")
    stale = _session(tenant.client_id, r.id, "stale@x.test", nps=3, user_messages=2)
    too_short = _session(tenant.client_id, r.id, "short@x.test", nps=5, user_messages=1)
    unrated = _session(tenant.client_id, r.id, "unrated@x.test", user_messages=3)

    payload = insights.generate_round_insights(tenant.client_id, r.id)

    stale = db.session.get(SurveySession, stale.id)
    assert stale.completed is True
    assert stale.summary
    assert db.session.get(SurveySession, too_short.id).completed is False
    assert db.session.get(SurveySession, unrated.id).completed is False
    assert payload["response_count"] == 2
    # one promoter (9), one detractor (3)
    assert payload["nps_score"] == 0


def test_payload_shape_and_persistence(ctx, tenant, fake_ai):
    member = make_member(tenant.client_id, "a@x.test", first_name="Avery", last_name="Stone")
    r = _round(tenant.client_id)
    _session(tenant.client_id, r.id, "a@x.test", nps=10, completed=True, summary="Loves the new portal.",
             user_id=member.id, community_name="Oak Ridge", user_messages=1)

    payload = insights.generate_round_insights(tenant.client_id, r.id)
    assert payload["executive_summary"].startswith("Residents value communication")
    assert payload["key_findings"][0]["severity"] == "concerning"
    assert payload["nps_score"] == 100
    assert payload["response_count"] == 1
    # fenced and prose-wrapped pass output both parse
    assert payload["passes"]["actions"][0]["priority"] == "high"
    assert payload["passes"]["callouts"][0]["area"] == "Vendor management"

    r = db.session.get(SurveyRound, r.id)
    assert r.insights_json == payload
    assert r.insights_generated_at is not None
    assert r.word_frequencies[0]["word"] in {"resident", "answer", "pool", "gate"}

    context = fake_ai.calls_of("key_findings")[0].messages[0]["content"]
    assert "Company: Summit Property Group" in context
    assert "Respondent 1 (Avery Stone, Oak Ridge, NPS: 10):\nLoves the new portal." in context
    assert "Previous Round Context" not in context


def test_synthesis_waits_for_all_three_passes(ctx, tenant, fake_ai):
    r = _round(tenant.client_id)
    _session(tenant.client_id, r.id, "a@x.test", nps=8, completed=True, summary="Fine.")
    insights.generate_round_insights(tenant.client_id, r.id)

    kinds = [c.kind for c in fake_ai.calls]
    assert sorted(kinds[:3]) == ["cam_ascent_callouts", "key_findings", "recommended_actions"]
    assert kinds[3:] == ["synthesis"]
    assert all(c.max_tokens == insights.PASS_MAX_TOKENS for c in fake_ai.calls[:3])
    assert fake_ai.calls[3].max_tokens == insights.SYNTHESIS_MAX_TOKENS


def test_unparseable_synthesis_falls_back_to_pass_results(ctx, tenant, fake_ai):
    fake_ai.script["synthesis"] = "Sorry, I was unable to produce JSON this time."
    r = _round(tenant.client_id)
    _session(tenant.client_id, r.id, "a@x.test", nps=6, completed=True, summary="Slow repairs.")

    payload = insights.generate_round_insights(tenant.client_id, r.id)
    assert payload["executive_summary"] == insights.SYNTHESIS_FALLBACK_SUMMARY
    assert payload["key_findings"] == payload["passes"]["findings"]
    assert payload["recommended_actions"][0]["action"] == "Publish a maintenance SLA"


def test_failed_pass_contributes_empty_list(ctx, tenant, fake_ai):
    fake_ai.script["key_findings"] = ExternalServiceError("AI request failed: overloaded")
    fake_ai.script["synthesis"] = ExternalServiceError("AI request failed: overloaded")
    r = _round(tenant.client_id)
    _session(tenant.client_id, r.id, "a@x.test", nps=6, completed=True, summary="Slow repairs.")

    payload = insights.generate_round_insights(tenant.client_id, r.id)
    assert payload["passes"]["findings"] == []
    assert payload["key_findings"] == []
    assert payload["executive_summary"] == insights.SYNTHESIS_FALLBACK_SUMMARY
    assert db.session.get(SurveyRound, r.id).insights_json is not None


def test_no_summaries_means_no_insights(ctx, tenant, fake_ai):
    r = _round(tenant.client_id)
    _session(tenant.client_id, r.id, "a@x.test", nps=6)
    assert insights.generate_round_insights(tenant.client_id, r.id) is None
    assert db.session.get(SurveyRound, r.id).insights_json is None
    assert fake_ai.calls == []


def test_previous_round_insights_are_mentioned(ctx, tenant, fake_ai):
    first = _round(tenant.client_id, number=1)
    first.insights_json = {"executive_summary": "old"}
    second = _round(tenant.client_id, number=2)
    _session(tenant.client_id, second.id, "a@x.test", nps=9, completed=True, summary="Good.")
    insights.generate_round_insights(tenant.client_id, second.id)
    context = fake_ai.calls_of("key_findings")[0].messages[0]["content"]
    assert "Previous Round Context" in context


def test_regenerate_requires_concluded_round_and_skips_stale_sweep(ctx, tenant, fake_ai):
    live = _round(tenant.client_id, status="in_progress")
    with pytest.raises(PreconditionFailed):
        insights.regenerate_insights(tenant.client_id, live.id)

    r = _round(tenant.client_id, number=2)
    _session(tenant.client_id, r.id, "a@x.test", nps=9, completed=True, summary="Good.")
    stale = _session(tenant.client_id, r.id, "b@x.test", nps=2, user_messages=3)
    payload = insights.regenerate_insights(tenant.client_id, r.id)
    assert payload["response_count"] == 1
    assert db.session.get(SurveySession, stale.id).completed is False


def test_admin_finalize_session(ctx, tenant, fake_ai):
    r = _round(tenant.client_id, status="in_progress")
    short = _session(tenant.client_id, r.id, "a@x.test", nps=4, user_messages=1)
    with pytest.raises(PreconditionFailed) as exc:
        finalize_session(tenant.client_id, short.id)
    assert exc.value.reason == "not_enough_messages"

    s = _session(tenant.client_id, r.id, "b@x.test", nps=4, user_messages=2)
    finalize_session(tenant.client_id, s.id)
    s = db.session.get(SurveySession, s.id)
    assert s.completed and s.summary
    summary_call = fake_ai.calls_of("summary")[0]
    assert "NPS Score: 4" in summary_call.messages[0]["content"]
    assert "Resident: Resident answer 0" in summary_call.messages[0]["content"]

    with pytest.raises(PreconditionFailed) as exc:
        finalize_session(tenant.client_id, s.id)
    assert exc.value.reason == "already_completed"


def test_crashing_pass_falls_back_without_aborting_the_run(ctx, tenant, fake_ai):
    fake_ai.script["recommended_actions"] = RuntimeError("unexpected reply shape")
    r = _round(tenant.client_id)
    _session(tenant.client_id, r.id, "a@x.test", nps=6, completed=True, summary="Slow repairs.")

    payload = insights.generate_round_insights(tenant.client_id, r.id)
    assert payload["passes"]["actions"] == []
    assert payload["passes"]["findings"][0]["severity"] == "concerning"
    assert fake_ai.calls_of("synthesis")


def test_stale_sweep_continues_past_a_failing_summary(ctx, tenant, fake_ai):
    fake_ai.script["summary"] = RuntimeError("garbled reply")
    r = _round(tenant.client_id)
    first = _session(tenant.client_id, r.id, "a@x.test", nps=4, user_messages=2)
    second = _session(tenant.client_id, r.id, "b@x.test", nps=9, user_messages=2)

    assert insights.finalize_stale_sessions(tenant.client_id, r.id) == [first.id, second.id]
    assert len(fake_ai.calls_of("summary")) == 2
    assert db.session.get(SurveySession, second.id).completed is True
