from sqlalchemy import text, UniqueConstraint
from residentpulse.extensions import db
from residentpulse.utils.helpers import iso, utcnow

ROUND_PLANNED = "planned"
ROUND_IN_PROGRESS = "in_progress"
ROUND_CONCLUDED = "concluded"

class SurveyRound(db.Model):
    __tablename__ = "survey_rounds"

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    round_number = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=ROUND_PLANNED, server_default=ROUND_PLANNED)

    scheduled_date = db.Column(db.Date, nullable=False)
    launched_at = db.Column(db.DateTime, nullable=True)
    closes_at = db.Column(db.DateTime, nullable=True)
    concluded_at = db.Column(db.DateTime, nullable=True)
    members_invited = db.Column(db.Integer, nullable=True)

    reminder_10_sent = db.Column(db.Boolean, nullable=False, default=False)
    reminder_20_sent = db.Column(db.Boolean, nullable=False, default=False)
    admin_reminder_14_sent = db.Column(db.Boolean, nullable=False, default=False)
    admin_reminder_0_sent = db.Column(db.Boolean, nullable=False, default=False)

    insights_json = db.Column(db.JSON, nullable=True)
    insights_generated_at = db.Column(db.DateTime, nullable=True)
    word_frequencies = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("client_id", "round_number", name="uq_survey_rounds_client_round_number"),
        db.CheckConstraint(
            "status IN ('planned','in_progress','concluded')", name="ck_survey_rounds_status_valid"
        ),
        # At most one active round per client
        db.Index(
            "ux_survey_rounds_client_in_progress",
            "client_id",
            unique=True,
            postgresql_where=text("status = 'in_progress'"),
            sqlite_where=text("status = 'in_progress'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<SurveyRound id={self.id} client_id={self.client_id} #{self.round_number} {self.status}>"

    def to_dict(self):
        return dict(
            id=self.id,
            round_number=self.round_number,
            status=self.status,
            scheduled_date=iso(self.scheduled_date),
            launched_at=iso(self.launched_at),
            closes_at=iso(self.closes_at),
            concluded_at=iso(self.concluded_at),
            members_invited=self.members_invited,
            reminder_10_sent=self.reminder_10_sent,
            reminder_20_sent=self.reminder_20_sent,
            insights_generated_at=iso(self.insights_generated_at),
            has_insights=self.insights_json is not None,
        )
