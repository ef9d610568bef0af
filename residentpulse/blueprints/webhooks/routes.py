import hmac
import hashlib
import json
from flask import request, jsonify, abort, current_app
from . import bp
from residentpulse.extensions import db, limiter
from residentpulse.models import EmailLog, InvitationLog
from residentpulse.utils.helpers import utcnow

# Provider event type -> delivery_status
DELIVERY_EVENTS = {
    "email.delivered": "delivered",
    "email.bounced": "bounced",
    "email.complained": "complained",
    "email.delivery_delayed": "delayed",
}

def _valid_signature(raw_body: bytes, timestamp: str, sig: str) -> bool:
    secret = current_app.config.get("EMAIL_WEBHOOK_SECRET")
    if not secret:
        return False
    mac = hmac.new(secret.encode("utf-8"), (timestamp + ".").encode("utf-8") + raw_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(mac, sig)

@limiter.exempt
@bp.post("/email")
def email_events():
    # Generic HMAC: X-Timestamp, X-Signature
    timestamp = request.headers.get("X-Timestamp", "")
    signature = request.headers.get("X-Signature", "")
    raw = request.get_data() or b""

    if not _valid_signature(raw, timestamp, signature):
        abort(401)

    payload = request.get_json(force=True, silent=True) or {}
    event_type = payload.get("type") or ""
    data = payload.get("data") or {}
    provider_msg_id = data.get("email_id")
    status = DELIVERY_EVENTS.get(event_type)

    if status is None or not provider_msg_id:
        current_app.logger.info(json.dumps({"event": "mail_webhook", "type": event_type, "outcome": "ignored"}))
        return jsonify({"ok": True, "ignored": True}), 200

    now = utcnow()
    bounce_type = (data.get("bounce") or {}).get("type") if status == "bounced" else None
    updated = 0
    for row in InvitationLog.query.filter_by(provider_msg_id=provider_msg_id).all():
        row.delivery_status = status
        row.delivery_updated_at = now
        if bounce_type:
            row.bounce_type = bounce_type
        updated += 1

    # Feeds the send-side suppression check
    for elog in EmailLog.query.filter_by(provider_msg_id=provider_msg_id).all():
        elog.status = status
        elog.meta = dict(elog.meta or {}, webhook_type=event_type, bounce_type=bounce_type)
    db.session.commit()

    current_app.logger.info(json.dumps({
        "event": "mail_webhook",
        "type": event_type,
        "status": status,
        "provider_msg_id": provider_msg_id,
        "invitation_rows": updated,
    }))
    return jsonify({"ok": True, "updated": updated}), 200
