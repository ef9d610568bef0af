import os
# Ensure the app factory picks the Testing config & SQLite memory DB
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("TEST_DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("EMAIL_WEBHOOK_SECRET", "testsecret")

import json
import threading
from types import SimpleNamespace

import pytest
from residentpulse import create_app
from residentpulse.extensions import db, mail
from residentpulse.models import BoardMember, Client, ClientAdmin, Community, Subscription
from residentpulse.services.chat import ALERT_SYSTEM_PROMPT
from residentpulse.services.errors import ExternalServiceError
from residentpulse.services.summaries import SUMMARY_SYSTEM_PROMPT


class FakeAIClient:
    """Scripted stand-in for the Anthropic client.

    Replies are picked by what the prompt is asking for. ``script`` entries
    override the canned reply for one kind; an Exception instance is raised.
    """

    def __init__(self):
        self.calls = []
        self.script = {}
        self.alert_verdicts = {}
        self._lock = threading.Lock()

    def kind_of(self, system, messages):
        if system == ALERT_SYSTEM_PROMPT:
            return "alert"
        if system == SUMMARY_SYSTEM_PROMPT:
            return "summary"
        last = messages[-1]["content"] if messages else ""
        if not system:
            if "FINAL synthesis" in last:
                return "synthesis"
            if "identify the KEY FINDINGS" in last:
                return "key_findings"
            if "generate RECOMMENDED ACTIONS" in last:
                return "recommended_actions"
            if "CAM Ascent (a property management consulting firm)" in last:
                return "cam_ascent_callouts"
        return "chat"

    def complete(self, system, messages, max_tokens, model=None):
        messages = list(messages)
        kind = self.kind_of(system, messages)
        with self._lock:
            self.calls.append(SimpleNamespace(kind=kind, system=system, messages=messages, max_tokens=max_tokens))
        scripted = self.script.get(kind)
        if isinstance(scripted, Exception):
            raise scripted
        if scripted is not None:
            return scripted
        return self._default(kind, messages)

    def _default(self, kind, messages):
        last = messages[-1]["content"] if messages else ""
        if kind == "alert":
            for needle, verdict in self.alert_verdicts.items():
                if needle in last:
                    return json.dumps(verdict)
            return json.dumps({"is_critical": False})
        if kind == "summary":
            return "Board member is broadly satisfied but wants faster maintenance responses."
        if kind == "key_findings":
            return json.dumps([{"finding": "Maintenance response is slow", "evidence": "Two respondents", "severity": "concerning"}])
        if kind == "recommended_actions":
            return "```json\n" + json.dumps([{"action": "Publish a maintenance SLA", "priority": "high", "impact": "Fewer escalations", "rationale": "Repeated complaints"}]) + "\n```"
        if kind == "cam_ascent_callouts":
            return "Here you go: " + json.dumps([{"area": "Vendor management", "opportunity": "Vendor scorecards", "suggested_service": "Vendor review"}])
        if kind == "synthesis":
            return json.dumps({
                "executive_summary": "Residents value communication but want quicker maintenance.",
                "key_findings": [{"finding": "Maintenance response is slow", "evidence": "Two respondents", "severity": "concerning"}],
                "recommended_actions": [{"action": "Publish a maintenance SLA", "priority": "high", "impact": "Fewer escalations", "rationale": "Repeated complaints"}],
                "cam_ascent_callouts": [{"area": "Vendor management", "opportunity": "Vendor scorecards", "suggested_service": "Vendor review"}],
            })
        return "Thanks for sharing. What could we do better?"

    def calls_of(self, kind):
        return [c for c in self.calls if c.kind == kind]


@pytest.fixture(scope="session")
def app():
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "MAIL_SUPPRESS_SEND": True,
        "APP_BASE_URL": "http://example.test",
        "SURVEY_BASE_URL": "http://survey.example.test",
        "EMAIL_WEBHOOK_SECRET": os.environ.get("EMAIL_WEBHOOK_SECRET", "testsecret"),
        "RATELIMIT_ENABLED": False,
        "TASKS_EAGER": True,
        "INVITE_SEND_DELAY_SECONDS": 0.0,
    })
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture(autouse=True)
def _db_clean(app):
    # Clean BEFORE each test
    with app.app_context():
        db.session.rollback()
        for tbl in reversed(db.metadata.sorted_tables):
            db.session.execute(tbl.delete())
        db.session.commit()
    app.extensions["chat_rate_limiter"].reset()
    yield
    # And AFTER each test (keeps state hermetic even if a test fails mid-transaction)
    with app.app_context():
        db.session.rollback()
        for tbl in reversed(db.metadata.sorted_tables):
            db.session.execute(tbl.delete())
        db.session.commit()


@pytest.fixture()
def fake_ai(app):
    previous = app.extensions["ai_client"]
    fake = FakeAIClient()
    app.extensions["ai_client"] = fake
    yield fake
    app.extensions["ai_client"] = previous


@pytest.fixture()
def failing_ai(fake_ai):
    for kind in ("chat", "alert", "summary", "key_findings", "recommended_actions", "cam_ascent_callouts", "synthesis"):
        fake_ai.script[kind] = ExternalServiceError("AI request failed: upstream 529")
    return fake_ai


@pytest.fixture()
def ctx(app):
    with app.app_context():
        yield


@pytest.fixture()
def outbox(app):
    with mail.record_messages() as sent:
        yield sent


def make_tenant(company_name="Summit Property Group", cadence=2, ceiling=None, member_limit=None,
                status="active", admin_email=None):
    c = Client(company_name=company_name)
    db.session.add(c)
    db.session.flush()
    admin = ClientAdmin(client_id=c.id, email=admin_email or f"admin{c.id}@summit.test", first_name="Dana")
    db.session.add(admin)
    db.session.add(Subscription(
        client_id=c.id,
        status=status,
        survey_rounds_per_year=ceiling or cadence,
        survey_cadence=cadence,
        member_limit=member_limit,
    ))
    db.session.commit()
    return SimpleNamespace(client_id=c.id, admin_id=admin.id, admin_email=admin.email)


def make_member(client_id, email, community=None, **kw):
    m = BoardMember(
        client_id=client_id,
        email=email,
        first_name=kw.pop("first_name", email.split("@")[0].title()),
        community_name=community.community_name if community else kw.pop("community_name", None),
        community_id=community.id if community else None,
        **kw,
    )
    db.session.add(m)
    db.session.commit()
    return m


def make_community(client_id, name, **kw):
    c = Community(client_id=client_id, community_name=name, **kw)
    db.session.add(c)
    db.session.commit()
    return c


@pytest.fixture()
def tenant(ctx):
    return make_tenant()


@pytest.fixture()
def login(client):
    def _login(admin_id):
        with client.session_transaction() as sess:
            sess["_user_id"] = str(admin_id)
            sess["_fresh"] = True
        return client
    return _login
