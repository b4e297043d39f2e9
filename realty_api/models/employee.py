from datetime import datetime
from realty_api.extensions import db
from werkzeug.security import generate_password_hash, check_password_hash

EMPLOYEE_ROLES = ("field_agent", "team_lead", "manager")


class Employee(db.Model):
    __tablename__ = "employees"

    id = db.Column(db.Integer, primary_key=True)

    employee_code = db.Column(db.String(16), unique=True, nullable=False)   # SNK<year><4 digits>
    referral_code = db.Column(db.String(16), unique=True, nullable=False)   # EMP<4 chars>, upper-cased
    name  = db.Column(db.String(160), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    phone = db.Column(db.String(20), nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)

    role      = db.Column(db.Enum(*EMPLOYEE_ROLES, name="employee_role_enum"), default="field_agent", nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    join_date  = db.Column(db.DateTime, default=datetime.utcnow)
    last_login = db.Column(db.DateTime, nullable=True)

    # commission configuration (flat amounts per event, all-or-nothing monthly bonuses)
    rate_user_registration     = db.Column(db.Numeric(14, 2), nullable=False, default=50)
    rate_broker_registration   = db.Column(db.Numeric(14, 2), nullable=False, default=200)
    rate_broker_first_property = db.Column(db.Numeric(14, 2), nullable=False, default=500)
    bonus_user_achievement     = db.Column(db.Integer, nullable=False, default=30)
    bonus_user_amount          = db.Column(db.Numeric(14, 2), nullable=False, default=2000)
    bonus_broker_achievement   = db.Column(db.Integer, nullable=False, default=10)
    bonus_broker_amount        = db.Column(db.Numeric(14, 2), nullable=False, default=5000)

    # targets are informational only
    target_monthly_users     = db.Column(db.Integer, nullable=False, default=30)
    target_monthly_brokers   = db.Column(db.Integer, nullable=False, default=10)
    target_quarterly_users   = db.Column(db.Integer, nullable=False, default=90)
    target_quarterly_brokers = db.Column(db.Integer, nullable=False, default=30)

    bank_details = db.Column(db.JSON)
    address      = db.Column(db.JSON)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.Index("ix_emp_is_active", "is_active"),
        db.Index("ix_emp_role", "role"),
    )

    def set_password(self, raw: str):
        self.password_hash = generate_password_hash(raw)

    def check_password(self, raw: str) -> bool:
        return check_password_hash(self.password_hash, raw)

    @property
    def targets(self):
        return {
            "monthly": {"users": self.target_monthly_users, "brokers": self.target_monthly_brokers},
            "quarterly": {"users": self.target_quarterly_users, "brokers": self.target_quarterly_brokers},
        }
