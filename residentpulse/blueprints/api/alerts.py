from flask import jsonify, request

from . import bp
from residentpulse.services import alerts
from residentpulse.services.policy import current_client_id, require_client_admin


@bp.get("/alerts")
@require_client_admin
def open_alerts():
    return jsonify([a.to_dict() for a in alerts.list_open_alerts(current_client_id())])


@bp.get("/alerts/round/<int:round_id>")
@require_client_admin
def round_alerts(round_id: int):
    return jsonify([a.to_dict() for a in alerts.list_round_alerts(current_client_id(), round_id)])


@bp.post("/alerts/<int:alert_id>/dismiss")
@require_client_admin
def dismiss(alert_id: int):
    data = request.get_json(silent=True) or {}
    return jsonify(alerts.dismiss_alert(current_client_id(), alert_id, data.get("reason")).to_dict())


@bp.post("/alerts/<int:alert_id>/solve")
@require_client_admin
def solve(alert_id: int):
    data = request.get_json(silent=True) or {}
    return jsonify(alerts.solve_alert(current_client_id(), alert_id, data.get("note")).to_dict())
