from datetime import datetime
from realty_api.extensions import db

PROPERTY_TYPES = ("Apartment", "House", "Villa", "Cottage", "Commercial", "Land")
TRANSACTION_TYPES = ("Sale", "Rent", "Lease")


class Property(db.Model):
    __tablename__ = "properties"

    id = db.Column(db.Integer, primary_key=True)
    broker_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    title       = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False)
    property_type    = db.Column(db.Enum(*PROPERTY_TYPES, name="property_type_enum"), nullable=False)
    transaction_type = db.Column(db.Enum(*TRANSACTION_TYPES, name="transaction_type_enum"), nullable=False)
    price = db.Column(db.Numeric(14, 2), nullable=False)
    city  = db.Column(db.String(120), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    broker = db.relationship("User", lazy="joined")
