from residentpulse.extensions import db
from residentpulse.utils.helpers import utcnow

KIND_INVITATION = "invitation"
KIND_REMINDER_10 = "reminder_10"
KIND_REMINDER_20 = "reminder_20"

# delivery_status values that remove a member from reminder fan-out
UNDELIVERABLE = ("bounced", "complained")

class InvitationLog(db.Model):
    __tablename__ = "invitation_logs"

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    round_id = db.Column(db.Integer, db.ForeignKey("survey_rounds.id", ondelete="CASCADE"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("board_members.id", ondelete="SET NULL"), nullable=True, index=True)
    email = db.Column(db.String(320), nullable=False)
    kind = db.Column(db.String(20), nullable=False, default=KIND_INVITATION)

    email_status = db.Column(db.String(20), nullable=False)  # sent|failed
    error_message = db.Column(db.Text, nullable=True)
    # Set by delivery webhooks; NULL reads as delivered
    delivery_status = db.Column(db.String(20), nullable=True)
    bounce_type = db.Column(db.String(64), nullable=True)
    delivery_updated_at = db.Column(db.DateTime, nullable=True)
    provider_msg_id = db.Column(db.String(255), nullable=True, index=True)

    sent_by = db.Column(db.Integer, db.ForeignKey("client_admins.id", ondelete="SET NULL"), nullable=True)
    sent_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<InvitationLog id={self.id} round_id={self.round_id} user_id={self.user_id} {self.kind}:{self.email_status}>"
