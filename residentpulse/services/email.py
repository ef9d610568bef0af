from typing import Optional, Dict, Any
from urllib.parse import urljoin
from flask import current_app, render_template
from flask_mail import Message
from residentpulse.extensions import db, mail
from residentpulse.models import EmailLog
from residentpulse.utils.helpers import utcnow
from .errors import ExternalServiceError
from datetime import timedelta
import json
import time

SUPPRESSION_WINDOW_DAYS = 90

def is_suppressed(to_email: str) -> bool:
    """
    Return True if the address should be suppressed due to a recent bounce/complaint.
    """
    cutoff = utcnow() - timedelta(days=SUPPRESSION_WINDOW_DAYS)
    q = EmailLog.query.filter(
        EmailLog.to_email == to_email.lower(),
        EmailLog.created_at >= cutoff,
        EmailLog.status.in_(("bounced", "complained")),
    )
    return db.session.query(q.exists()).scalar()

def absolute_url(path: str, base_key: str = "APP_BASE_URL") -> str:
    base = current_app.config[base_key].rstrip("/") + "/"
    path = path.lstrip("/")
    return urljoin(base, path)

def survey_url(token: str) -> str:
    return absolute_url(f"survey?token={token}", base_key="SURVEY_BASE_URL")

def send_email(
    to_email: str,
    subject: str,
    template: str,
    context: Optional[Dict[str, Any]] = None,
    client_id: Optional[int] = None,
) -> Optional[str]:
    """
    template: basename under templates/email/ without extension (e.g., 'invitation').
    Renders both HTML and plaintext and returns the provider message id.
    Raises ExternalServiceError when the address is suppressed or the transport fails;
    every attempt leaves one EmailLog row.
    """
    context = dict(context or {})
    context.setdefault("site_name", current_app.config.get("SITE_NAME", "ResidentPulse"))
    to_email = to_email.lower()

    if is_suppressed(to_email):
        db.session.add(EmailLog(
            client_id=client_id,
            to_email=to_email,
            template=template,
            subject=subject,
            status="failed",
            meta={"reason": "suppressed"},
        ))
        db.session.commit()
        current_app.logger.warning(json.dumps({
            "event": "mail_send", "template": template, "to": to_email, "outcome": "suppressed",
        }))
        raise ExternalServiceError("Recipient suppressed after a recent bounce or complaint")

    msg = Message(recipients=[to_email], subject=subject)
    msg.body = render_template(f"email/{template}.txt", **context)
    msg.html = render_template(f"email/{template}.html", **context)

    elog = EmailLog(
        client_id=client_id,
        to_email=to_email,
        template=template,
        subject=subject,
        status="queued",
        meta={},
    )
    db.session.add(elog)
    db.session.commit()

    start = time.perf_counter()
    try:
        mail.send(msg)
    except Exception as ex:
        latency_ms = int((time.perf_counter() - start) * 1000)
        elog.status = "failed"
        elog.meta = {"error": str(ex)}
        db.session.commit()
        current_app.logger.warning(json.dumps({
            "event": "mail_send",
            "template": template,
            "to": to_email,
            "subject": subject,
            "outcome": "smtp_error",
            "latency_ms": latency_ms,
            "smtp_error": str(ex),
        }))
        raise ExternalServiceError(f"Mail transport failed: {ex}") from ex

    latency_ms = int((time.perf_counter() - start) * 1000)
    # Message-ID header; delivery webhooks echo it back
    provider_id = getattr(msg, "msgId", None)
    elog.status = "sent"
    elog.provider_msg_id = provider_id
    db.session.commit()
    current_app.logger.info(json.dumps({
        "event": "mail_send",
        "template": template,
        "to": to_email,
        "subject": subject,
        "outcome": "sent",
        "provider_msg_id": provider_id,
        "latency_ms": latency_ms,
    }))
    return provider_id
