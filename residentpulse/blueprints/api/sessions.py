from flask import jsonify, request

from . import bp
from residentpulse.services import chat
from residentpulse.services.errors import ValidationError
from residentpulse.services.policy import current_client_id, require_client_admin
from residentpulse.services.summaries import finalize_session
from residentpulse.utils.helpers import safe_int


def _body() -> dict:
    return request.get_json(silent=True) or {}


@bp.post("/sessions")
def create_session():
    data = _body()
    if data.get("token"):
        s = chat.start_session_from_invitation(data["token"])
    else:
        client_id = safe_int(data.get("client_id"))
        if client_id is None:
            raise ValidationError("client_id or token is required")
        s = chat.start_session(
            client_id,
            data.get("email"),
            community_name=data.get("community_name"),
            management_company=data.get("management_company"),
        )
    return jsonify(s.to_dict()), 201


@bp.get("/sessions/incomplete")
def incomplete_session():
    s = chat.find_incomplete_session(safe_int(request.args.get("client_id")), request.args.get("email"))
    if s is None:
        return jsonify({"session": None, "messages": []})
    return jsonify({"session": s.to_dict(), "messages": [m.to_dict() for m in s.messages]})


@bp.patch("/sessions/<int:session_id>/nps")
def set_nps(session_id: int):
    s = chat.set_nps_score(session_id, _body().get("nps_score"))
    return jsonify(s.to_dict())


@bp.patch("/sessions/<int:session_id>/complete")
def complete(session_id: int):
    chat.complete_session(session_id)
    return jsonify({"ok": True})


@bp.post("/chat")
def post_chat():
    data = _body()
    return jsonify(chat.post_message(data.get("session_id"), data.get("message")))


@bp.post("/admin/sessions/<int:session_id>/finalize")
@require_client_admin
def admin_finalize(session_id: int):
    s = finalize_session(current_client_id(), session_id)
    return jsonify(s.to_dict())


@bp.delete("/admin/sessions/<int:session_id>")
@require_client_admin
def admin_delete(session_id: int):
    chat.delete_session(current_client_id(), session_id)
    return jsonify({"ok": True})


@bp.patch("/admin/sessions/<int:session_id>/reassign")
@require_client_admin
def admin_reassign(session_id: int):
    data = _body()
    changes = {}
    if "round_id" in data:
        changes["round_id"] = None if data["round_id"] is None else _required_int(data["round_id"], "round_id")
    if data.get("member_id") is not None:
        changes["member_id"] = _required_int(data["member_id"], "member_id")
    if not changes:
        raise ValidationError("round_id or member_id is required")
    s = chat.reassign_session(current_client_id(), session_id, **changes)
    return jsonify(s.to_dict())


def _required_int(value, field: str) -> int:
    parsed = safe_int(value)
    if parsed is None or isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    return parsed
