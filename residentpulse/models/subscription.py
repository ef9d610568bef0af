from sqlalchemy import text, UniqueConstraint
from residentpulse.extensions import db

class Subscription(db.Model):
    __tablename__ = "subscriptions"

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)

    status = db.Column(db.String(32), nullable=False, index=True, server_default=text("'active'"))
    plan_name = db.Column(db.String(64), nullable=True)

    # None means unlimited board members
    member_limit = db.Column(db.Integer, nullable=True)
    # Plan ceiling vs. the cadence the client actually picked (2 or 4)
    survey_rounds_per_year = db.Column(db.Integer, nullable=False, server_default=text("2"))
    survey_cadence = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))
    updated_at = db.Column(db.DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))

    __table_args__ = (
        UniqueConstraint("client_id", name="uq_subscriptions_client_id"),
    )

    def __repr__(self) -> str:
        return f"<Subscription id={self.id} client_id={self.client_id} status={self.status!r} cadence={self.survey_cadence}>"
