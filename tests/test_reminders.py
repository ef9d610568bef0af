from datetime import date, datetime, timedelta

from conftest import make_community, make_member
from residentpulse.extensions import db
from residentpulse.models import InvitationLog, SurveyRound, SurveySession
from residentpulse.services import reminders, rounds

LAUNCH = datetime(2026, 3, 2, 9, 0, 0)
DAY_10 = LAUNCH + timedelta(days=10, hours=1)
DAY_20 = LAUNCH + timedelta(days=20, hours=1)


def _launch(tenant, members):
    for email in members:
        make_member(tenant.client_id, email)
    r = SurveyRound(client_id=tenant.client_id, round_number=1, scheduled_date=LAUNCH.date(), status="planned")
    db.session.add(r)
    db.session.commit()
    rounds.launch_round(tenant.client_id, r.id, now=LAUNCH)
    return db.session.get(SurveyRound, r.id)


def _invitation(round_id, email):
    return InvitationLog.query.filter_by(round_id=round_id, email=email, kind="invitation").one()


def _reminded(round_id, kind):
    return sorted(l.email for l in InvitationLog.query.filter_by(round_id=round_id, kind=kind, email_status="sent"))


def test_day_10_reminder_skips_bounced_complained_and_responders(ctx, tenant, fake_ai, outbox):
    r = _launch(tenant, ["ok@x.test", "bounce@x.test", "complain@x.test", "done@x.test"])
    _invitation(r.id, "bounce@x.test").delivery_status = "bounced"
    _invitation(r.id, "complain@x.test").delivery_status = "complained"
    done = _invitation(r.id, "done@x.test")
    db.session.add(SurveySession(client_id=tenant.client_id, round_id=r.id, user_id=done.user_id,
                                 email="done@x.test", completed=True, nps_score=10))
    db.session.commit()

    recipients = reminders.reminder_recipients(r)
    assert [m.email for m in recipients] == ["ok@x.test"]

    del outbox[:]
    report = reminders.send_reminders(DAY_10)
    assert report == [{"round_id": r.id, "kind": "reminder_10", "sent": 1, "failed": 0}]
    assert _reminded(r.id, "reminder_10") == ["ok@x.test"]
    assert [m.recipients for m in outbox] == [["ok@x.test"]]
    assert "20 days remaining" in outbox[0].body

    r = db.session.get(SurveyRound, r.id)
    assert r.reminder_10_sent is True
    assert r.reminder_20_sent is False


def test_latest_delivery_status_wins(ctx, tenant, fake_ai):
    r = _launch(tenant, ["flip@x.test", "recovered@x.test"])
    flip = _invitation(r.id, "flip@x.test")
    flip.delivery_status = "delivered"
    flip.delivery_updated_at = LAUNCH + timedelta(hours=1)
    recovered = _invitation(r.id, "recovered@x.test")
    recovered.delivery_status = "delayed"
    recovered.delivery_updated_at = LAUNCH + timedelta(hours=1)
    db.session.add(InvitationLog(client_id=tenant.client_id, round_id=r.id, user_id=flip.user_id,
                                 email="flip@x.test", kind="reminder_10", email_status="sent",
                                 delivery_status="bounced", delivery_updated_at=LAUNCH + timedelta(days=10)))
    db.session.add(InvitationLog(client_id=tenant.client_id, round_id=r.id, user_id=recovered.user_id,
                                 email="recovered@x.test", kind="reminder_10", email_status="sent",
                                 delivery_status="delivered", delivery_updated_at=LAUNCH + timedelta(days=10)))
    db.session.commit()

    assert [m.email for m in reminders.reminder_recipients(r)] == ["recovered@x.test"]


def test_members_of_inactive_communities_are_skipped(ctx, tenant, fake_ai):
    closed = make_community(tenant.client_id, "Closed Acres")
    make_member(tenant.client_id, "left@x.test", community=closed)
    r = _launch(tenant, ["stay@x.test"])
    closed.status = "inactive"
    db.session.commit()
    assert [m.email for m in reminders.reminder_recipients(r)] == ["stay@x.test"]


def test_each_reminder_stage_fires_once(ctx, tenant, fake_ai):
    r = _launch(tenant, ["ok@x.test"])
    assert reminders.send_reminders(LAUNCH + timedelta(days=9)) == []

    reminders.send_reminders(DAY_10)
    reminders.send_reminders(DAY_10 + timedelta(hours=3))
    assert len(_reminded(r.id, "reminder_10")) == 1

    report = reminders.send_reminders(DAY_20)
    assert [x["kind"] for x in report] == ["reminder_20"]
    reminders.send_reminders(DAY_20 + timedelta(days=1))
    assert len(_reminded(r.id, "reminder_20")) == 1
    r = db.session.get(SurveyRound, r.id)
    assert r.reminder_10_sent and r.reminder_20_sent


def test_failed_reminder_send_still_sets_flag(ctx, tenant, fake_ai, monkeypatch):
    r = _launch(tenant, ["ok@x.test"])

    def boom(*a, **kw):
        raise RuntimeError("smtp down")
    monkeypatch.setattr(reminders, "send_reminder", boom)

    report = reminders.send_reminders(DAY_10)
    assert report[0]["failed"] == 1
    log = InvitationLog.query.filter_by(round_id=r.id, kind="reminder_10").one()
    assert log.email_status == "failed"
    assert log.error_message == "smtp down"
    assert db.session.get(SurveyRound, r.id).reminder_10_sent is True


def test_days_remaining_rounds_up_and_floors_at_one():
    closes = datetime(2026, 4, 1, 9)
    assert reminders.days_remaining(closes, closes - timedelta(days=19, hours=23)) == 20
    assert reminders.days_remaining(closes, closes - timedelta(hours=2)) == 1
    assert reminders.days_remaining(closes, closes + timedelta(days=2)) == 1


def test_approaching_notices_fire_once_each(ctx, tenant, outbox):
    today = date(2026, 5, 1)
    soon = SurveyRound(client_id=tenant.client_id, round_number=1, scheduled_date=today + timedelta(days=10))
    later = SurveyRound(client_id=tenant.client_id, round_number=2, scheduled_date=today + timedelta(days=60))
    db.session.add_all([soon, later])
    db.session.commit()

    report = reminders.send_approaching_reminders(datetime(2026, 5, 1, 9))
    assert report == [{"round_id": soon.id, "notice": "admin_reminder_14_sent", "days_until": 10}]
    assert outbox[0].subject == "Round 1 is scheduled in 10 days"
    assert reminders.send_approaching_reminders(datetime(2026, 5, 2, 9)) == []

    report = reminders.send_approaching_reminders(datetime(2026, 5, 11, 9))
    assert report == [{"round_id": soon.id, "notice": "admin_reminder_0_sent", "days_until": 0}]
    assert outbox[-1].subject == "Round 1 is scheduled to launch today"
    assert reminders.send_approaching_reminders(datetime(2026, 5, 12, 9)) == []
    assert len(outbox) == 2


def test_launched_rounds_get_no_approaching_notice(ctx, tenant, fake_ai, outbox):
    r = _launch(tenant, ["ok@x.test"])
    del outbox[:]
    assert reminders.send_approaching_reminders(LAUNCH) == []
    assert not outbox
    assert r.status == "in_progress"
