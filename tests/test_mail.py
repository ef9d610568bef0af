import json
import hmac
import hashlib
import time
from datetime import date, datetime

import pytest
from conftest import make_member
from residentpulse.extensions import db
from residentpulse.models import EmailLog, InvitationLog, SurveyRound
from residentpulse.services import tokens
from residentpulse.services.email import is_suppressed, send_email
from residentpulse.services.errors import ExternalServiceError

TEMPLATES = ("invitation", "reminder", "round_launched", "round_concluded", "round_approaching",
             "new_response", "critical_alert")


@pytest.mark.parametrize("template", TEMPLATES)
def test_email_templates_render_both_parts(app, template):
    ctx = dict(
        first_name="Pat", company_name="Summit", community_name="Oak Ridge", site_name="ResidentPulse",
        round_number=2, closes_at=datetime(2026, 4, 1), days_remaining=1, admin_name="Dana",
        members_invited=3, sent=3, failed=0, total_responses=1, total_invited=3, response_rate=33,
        scheduled_date=date(2026, 5, 1), days_until=14, respondent_name="Avery Stone",
        alert_type="legal threat", severity="critical", description="Threatened to sue.",
        respondent_email="a@x.test", action_url="http://survey.example.test/survey?token=abc",
        dashboard_url="http://example.test/admin",
    )
    with app.app_context():
        html = app.jinja_env.get_template(f"email/{template}.html").render(**ctx)
        txt = app.jinja_env.get_template(f"email/{template}.txt").render(**ctx)
    link = ctx["action_url"] if template in ("invitation", "reminder") else ctx["dashboard_url"]
    assert link in html
    assert link in txt


def test_reminder_copy_singular_day(app):
    with app.app_context():
        txt = app.jinja_env.get_template("email/reminder.txt").render(
            first_name="Pat", company_name="Summit", community_name="Oak", days_remaining=1, action_url="u")
    assert "There is 1 day remaining" in txt


def test_send_email_logs_and_returns_message_id(ctx, outbox):
    msg_id = send_email("Pat@X.test", "Hello", "reminder", {"first_name": "Pat", "days_remaining": 3,
                                                            "action_url": "http://u"}, client_id=None)
    assert msg_id
    row = EmailLog.query.one()
    assert (row.to_email, row.status, row.provider_msg_id) == ("pat@x.test", "sent", msg_id)
    assert outbox[0].recipients == ["pat@x.test"]
    assert outbox[0].html and outbox[0].body


def test_send_email_refuses_suppressed_address(ctx, outbox):
    db.session.add(EmailLog(to_email="toxic@example.com", template="unknown", subject="", status="complained", meta={}))
    db.session.commit()
    with pytest.raises(ExternalServiceError):
        send_email("toxic@example.com", "Hello", "reminder", {"days_remaining": 2, "action_url": "u"})
    assert not outbox
    assert EmailLog.query.filter_by(status="failed").one().meta == {"reason": "suppressed"}


def test_is_suppressed_true_for_recent_bounce(ctx):
    db.session.add(EmailLog(
        client_id=None,
        to_email="toxic@example.com",
        template="unknown",
        subject="",
        status="bounced",
        meta={},
    ))
    db.session.commit()

    assert is_suppressed("toxic@example.com") is True
    assert is_suppressed("new@example.com") is False


def test_invitation_token_roundtrip_and_expiry(ctx, monkeypatch):
    t = tokens.generate_invitation(7, 3)
    assert tokens.verify_invitation(t, max_age_seconds=60) == {"member_id": 7, "round_id": 3}
    assert tokens.generate_invitation(7, 3) != t
    assert tokens.verify_invitation(t[:-2] + "xx") is None

    later = time.time() + 120
    monkeypatch.setattr(time, "time", lambda: later)
    assert tokens.verify_invitation(t, max_age_seconds=60) is None


def _sign(secret: str, timestamp: str, body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), (timestamp + ".").encode("utf-8") + body, hashlib.sha256).hexdigest()


def _post_event(app, client, payload, secret=None):
    body = json.dumps(payload).encode("utf-8")
    ts = "1700000000"
    sig = _sign(secret or app.config["EMAIL_WEBHOOK_SECRET"], ts, body)
    return client.post(
        "/webhooks/email",
        data=body,
        headers={"Content-Type": "application/json", "X-Timestamp": ts, "X-Signature": sig},
    )


def _invitation_row(tenant, provider_msg_id="<msg-1@mail.test>"):
    m = make_member(tenant.client_id, "bounced@example.com")
    r = SurveyRound(client_id=tenant.client_id, round_number=1, scheduled_date=date(2026, 3, 2), status="in_progress")
    db.session.add(r)
    db.session.flush()
    row = InvitationLog(client_id=tenant.client_id, round_id=r.id, user_id=m.id, email=m.email,
                        email_status="sent", provider_msg_id=provider_msg_id)
    db.session.add(row)
    db.session.add(EmailLog(client_id=tenant.client_id, to_email=m.email, template="invitation", subject="s",
                            status="sent", provider_msg_id=provider_msg_id, meta={}))
    db.session.commit()
    return row.id


def test_webhook_bounce_marks_invitation_and_suppresses(app, client, tenant):
    row_id = _invitation_row(tenant)
    resp = _post_event(app, client, {
        "type": "email.bounced",
        "data": {"email_id": "<msg-1@mail.test>", "bounce": {"type": "Permanent"}},
    })
    assert resp.status_code == 200
    assert resp.get_json() == {"ok": True, "updated": 1}

    db.session.expire_all()
    row = db.session.get(InvitationLog, row_id)
    assert row.delivery_status == "bounced"
    assert row.bounce_type == "Permanent"
    assert row.delivery_updated_at is not None
    assert is_suppressed("bounced@example.com") is True


def test_webhook_delivered_does_not_suppress(app, client, tenant):
    row_id = _invitation_row(tenant)
    resp = _post_event(app, client, {"type": "email.delivered", "data": {"email_id": "<msg-1@mail.test>"}})
    assert resp.status_code == 200
    db.session.expire_all()
    assert db.session.get(InvitationLog, row_id).delivery_status == "delivered"
    assert is_suppressed("bounced@example.com") is False


def test_webhook_rejects_bad_signature(app, client, tenant):
    _invitation_row(tenant)
    resp = _post_event(app, client, {"type": "email.bounced", "data": {"email_id": "<msg-1@mail.test>"}},
                       secret="wrong")
    assert resp.status_code == 401
    db.session.expire_all()
    assert InvitationLog.query.one().delivery_status is None


def test_webhook_ignores_unknown_events(app, client):
    resp = _post_event(app, client, {"type": "email.opened", "data": {"email_id": "x"}})
    assert resp.status_code == 200
    assert resp.get_json()["ignored"] is True
