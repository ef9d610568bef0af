from residentpulse.extensions import db
from residentpulse.utils.helpers import iso, utcnow

ALERT_TYPES = ("contract_termination", "legal_threat", "safety_concern", "other_critical")
SEVERITIES = ("high", "critical")

class CriticalAlert(db.Model):
    __tablename__ = "critical_alerts"

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    round_id = db.Column(db.Integer, db.ForeignKey("survey_rounds.id", ondelete="SET NULL"), nullable=True, index=True)
    session_id = db.Column(db.Integer, db.ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("board_members.id", ondelete="SET NULL"), nullable=True)
    alert_type = db.Column(db.String(32), nullable=False)
    severity = db.Column(db.String(16), nullable=False)
    description = db.Column(db.Text, nullable=False)
    source_message_id = db.Column(db.Integer, db.ForeignKey("messages.id", ondelete="SET NULL"), nullable=True)

    dismissed = db.Column(db.Boolean, nullable=False, default=False)
    dismissed_at = db.Column(db.DateTime, nullable=True)
    dismiss_reason = db.Column(db.Text, nullable=True)
    solved = db.Column(db.Boolean, nullable=False, default=False)
    solved_at = db.Column(db.DateTime, nullable=True)
    solve_note = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        db.CheckConstraint(
            "alert_type IN ('contract_termination','legal_threat','safety_concern','other_critical')",
            name="ck_critical_alerts_type_valid",
        ),
        db.CheckConstraint("severity IN ('high','critical')", name="ck_critical_alerts_severity_valid"),
    )

    def to_dict(self):
        return dict(
            id=self.id,
            round_id=self.round_id,
            session_id=self.session_id,
            user_id=self.user_id,
            alert_type=self.alert_type,
            severity=self.severity,
            description=self.description,
            dismissed=self.dismissed,
            dismiss_reason=self.dismiss_reason,
            solved=self.solved,
            solve_note=self.solve_note,
            created_at=iso(self.created_at),
        )
