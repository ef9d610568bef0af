from sqlalchemy import func, UniqueConstraint
from residentpulse.extensions import db
from residentpulse.utils.helpers import utcnow


class Community(db.Model):
    __tablename__ = "communities"

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    community_name = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(20), nullable=False, server_default="active")
    contract_value = db.Column(db.Numeric(12, 2), nullable=True)
    community_manager_name = db.Column(db.String(255), nullable=True)
    property_type = db.Column(db.String(32), nullable=True)
    number_of_units = db.Column(db.Integer, nullable=True)
    contract_renewal_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("client_id", "community_name", name="uq_communities_client_name"),
        db.CheckConstraint("status IN ('active','inactive')", name="ck_communities_status_valid"),
    )

    def __repr__(self) -> str:
        return f"<Community id={self.id} name={self.community_name!r} status={self.status}>"

class RoundCommunitySnapshot(db.Model):
    """Community metadata frozen at round close; live rows may change afterwards."""
    __tablename__ = "round_community_snapshots"

    id = db.Column(db.Integer, primary_key=True)
    round_id = db.Column(db.Integer, db.ForeignKey("survey_rounds.id", ondelete="CASCADE"), nullable=False, index=True)
    community_id = db.Column(db.Integer, db.ForeignKey("communities.id", ondelete="CASCADE"), nullable=False)
    community_name = db.Column(db.String(255), nullable=False)
    contract_value = db.Column(db.Numeric(12, 2), nullable=True)
    community_manager_name = db.Column(db.String(255), nullable=True)
    property_type = db.Column(db.String(32), nullable=True)
    number_of_units = db.Column(db.Integer, nullable=True)
    snapshotted_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("round_id", "community_id", name="uq_round_community_snapshots_round_community"),
    )

    def to_dict(self):
        return dict(
            round_id=self.round_id,
            community_id=self.community_id,
            community_name=self.community_name,
            contract_value=float(self.contract_value) if self.contract_value is not None else None,
            community_manager_name=self.community_manager_name,
            property_type=self.property_type,
            number_of_units=self.number_of_units,
        )
