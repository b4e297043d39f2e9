from datetime import datetime
from realty_api.extensions import db
from werkzeug.security import generate_password_hash, check_password_hash

USER_TYPES = ("user", "broker", "sub_broker", "admin")
BROKER_TYPES = ("broker", "sub_broker")


class User(db.Model):
    __tablename__ = "users"

    id             = db.Column(db.Integer, primary_key=True)
    email          = db.Column(db.String(255), unique=True, index=True, nullable=False)
    password_hash  = db.Column(db.String(255), nullable=False)
    full_name      = db.Column(db.String(255), nullable=False)
    contact_number = db.Column(db.String(20), nullable=True)
    location       = db.Column(db.String(255), nullable=True)
    user_type      = db.Column(db.Enum(*USER_TYPES, name="user_type_enum"), default="user", nullable=False)
    is_active      = db.Column(db.Boolean, default=True, nullable=False)
    parent_broker_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # referral linkage (written by the referral service)
    referred_by_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="SET NULL"), nullable=True, index=True)
    referral_code  = db.Column(db.String(16), nullable=True)
    referral_date  = db.Column(db.DateTime, nullable=True, index=True)
    is_first_property_listed = db.Column(db.Boolean, default=False, nullable=False)
    first_property_date      = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    referred_by   = db.relationship("Employee", lazy="joined")
    parent_broker = db.relationship("User", remote_side=[id], lazy="select")

    # --- helpers ---
    def set_password(self, raw: str):
        self.password_hash = generate_password_hash(raw)

    def check_password(self, raw: str) -> bool:
        return check_password_hash(self.password_hash, raw)

    @property
    def is_broker(self) -> bool:
        return self.user_type in BROKER_TYPES

    @property
    def subject_type(self) -> str:
        """Ledger subject type: sub-brokers count as brokers."""
        return "broker" if self.is_broker else "user"

    def role_codes(self):
        return [self.user_type]
