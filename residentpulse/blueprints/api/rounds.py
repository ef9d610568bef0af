from flask import jsonify, request
from flask_login import current_user

from . import bp
from residentpulse.services import insights, reporting, rounds
from residentpulse.services.policy import current_client_id, require_client_admin


def _body() -> dict:
    return request.get_json(silent=True) or {}


@bp.get("/rounds")
@require_client_admin
def list_rounds():
    return jsonify(rounds.list_rounds(current_client_id()))


@bp.post("/rounds/schedule")
@require_client_admin
def schedule():
    created = rounds.schedule_initial_rounds(current_client_id(), _body().get("first_launch_date"))
    return jsonify([r.to_dict() for r in created]), 201


@bp.post("/rounds/<int:round_id>/launch")
@require_client_admin
def launch(round_id: int):
    return jsonify(rounds.launch_round(current_client_id(), round_id, sent_by=current_user.id))


@bp.post("/rounds/<int:round_id>/close")
@require_client_admin
def close(round_id: int):
    r = rounds.close_round(current_client_id(), round_id)
    return jsonify(r.to_dict())


@bp.post("/rounds/recalculate")
@require_client_admin
def recalculate():
    rounds.recalculate_cadence(current_client_id())
    return jsonify(rounds.list_rounds(current_client_id()))


@bp.patch("/rounds/cadence")
@require_client_admin
def cadence():
    cadence_value = _body().get("survey_cadence")
    rounds.update_cadence(current_client_id(), cadence_value)
    return jsonify({"ok": True, "survey_cadence": cadence_value, "rounds": rounds.list_rounds(current_client_id())})


@bp.post("/rounds/<int:round_id>/insights")
@require_client_admin
def regenerate(round_id: int):
    payload = insights.regenerate_insights(current_client_id(), round_id)
    return jsonify({"ok": payload is not None, "insights": payload})


@bp.get("/rounds/<int:round_id>/dashboard")
@require_client_admin
def dashboard(round_id: int):
    client_id = current_client_id()
    data = reporting.round_dashboard(client_id, round_id)
    data["by_manager"] = reporting.rollup_by_field(client_id, round_id, "community_manager_name")
    data["by_property_type"] = reporting.rollup_by_field(client_id, round_id, "property_type")
    return jsonify(data)


@bp.get("/rounds/trends")
@require_client_admin
def trends():
    return jsonify(reporting.nps_trend(current_client_id()))
