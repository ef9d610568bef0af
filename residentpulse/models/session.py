from residentpulse.extensions import db
from residentpulse.utils.helpers import iso, utcnow

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"

class SurveySession(db.Model):
    """One board member's survey conversation."""
    __tablename__ = "sessions"

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    round_id = db.Column(db.Integer, db.ForeignKey("survey_rounds.id", ondelete="SET NULL"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("board_members.id", ondelete="SET NULL"), nullable=True, index=True)
    email = db.Column(db.String(320), nullable=False, index=True)
    nps_score = db.Column(db.Integer, nullable=True)
    completed = db.Column(db.Boolean, nullable=False, default=False)
    summary = db.Column(db.Text, nullable=True)
    community_name = db.Column(db.String(255), nullable=True)
    community_id = db.Column(db.Integer, db.ForeignKey("communities.id", ondelete="SET NULL"), nullable=True)
    management_company = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    messages = db.relationship(
        "Message",
        backref="session",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="(Message.created_at, Message.id)",
    )

    __table_args__ = (
        db.CheckConstraint("nps_score IS NULL OR (nps_score >= 0 AND nps_score <= 10)", name="ck_sessions_nps_range"),
    )

    def user_message_count(self) -> int:
        return sum(1 for m in self.messages if m.role == ROLE_USER)

    def to_dict(self):
        return dict(
            id=self.id,
            round_id=self.round_id,
            email=self.email,
            nps_score=self.nps_score,
            completed=self.completed,
            summary=self.summary,
            community_name=self.community_name,
            created_at=iso(self.created_at),
        )

class Message(db.Model):
    __tablename__ = "messages"

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    role = db.Column(db.String(16), nullable=False)
    content = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        db.CheckConstraint("role IN ('user','assistant')", name="ck_messages_role_valid"),
    )

    def to_dict(self):
        return dict(role=self.role, content=self.content, created_at=iso(self.created_at))
