from datetime import datetime
from realty_api.extensions import db

SUBJECT_TYPES = ("user", "broker")


class ReferralStats(db.Model):
    """One ledger row per (employee, "YYYY-MM" period)."""
    __tablename__ = "referral_stats"

    id = db.Column(db.Integer, primary_key=True)
    # no FK: rows outlive a deleted employee and keep keying by id
    employee_id = db.Column(db.Integer, nullable=False)

    year   = db.Column(db.Integer, nullable=False)
    month  = db.Column(db.Integer, nullable=False)
    period = db.Column(db.String(7), nullable=False)     # "2024-01"

    users_referred          = db.Column(db.Integer, nullable=False, default=0)
    brokers_referred        = db.Column(db.Integer, nullable=False, default=0)
    broker_first_properties = db.Column(db.Integer, nullable=False, default=0)

    total_earnings = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    bonus_earnings = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    is_paid           = db.Column(db.Boolean, nullable=False, default=False)
    paid_date         = db.Column(db.DateTime, nullable=True)
    paid_amount       = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    payment_reference = db.Column(db.String(120), nullable=False, default="")

    notes          = db.Column(db.Text, nullable=False, default="")
    rates_snapshot = db.Column(db.JSON)   # rates at row creation; audit only

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    events = db.relationship(
        "ReferralEvent", order_by="ReferralEvent.id", lazy="select",
        cascade="all, delete-orphan", back_populates="stats",
    )
    daily_stats = db.relationship(
        "ReferralDailyStat", order_by="ReferralDailyStat.day", lazy="select",
        cascade="all, delete-orphan", back_populates="stats",
    )

    __table_args__ = (
        db.UniqueConstraint("employee_id", "period", name="uq_referral_stats_emp_period"),
        db.CheckConstraint("month >= 1 AND month <= 12", name="ck_referral_stats_month"),
        db.Index("ix_referral_stats_emp_ym", "employee_id", "year", "month"),
        db.Index("ix_referral_stats_ym", "year", "month"),
        db.Index("ix_referral_stats_period", "period"),
        db.Index("ix_referral_stats_is_paid", "is_paid"),
    )

    @property
    def total_referred(self) -> int:
        return (self.users_referred or 0) + (self.brokers_referred or 0)

    @property
    def total_commission(self):
        return (self.total_earnings or 0) + (self.bonus_earnings or 0)


class ReferralEvent(db.Model):
    """Append-only log of individual referrals booked against a ledger row."""
    __tablename__ = "referral_events"

    id = db.Column(db.Integer, primary_key=True)
    stats_id = db.Column(db.Integer, db.ForeignKey("referral_stats.id", ondelete="CASCADE"), nullable=False, index=True)

    subject_id   = db.Column(db.Integer, nullable=False, index=True)
    subject_type = db.Column(db.Enum(*SUBJECT_TYPES, name="referral_subject_type_enum"), nullable=False)
    commission   = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    is_first_property = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    stats = db.relationship("ReferralStats", back_populates="events")


class ReferralDailyStat(db.Model):
    __tablename__ = "referral_daily_stats"

    id = db.Column(db.Integer, primary_key=True)
    stats_id = db.Column(db.Integer, db.ForeignKey("referral_stats.id", ondelete="CASCADE"), nullable=False, index=True)
    day = db.Column(db.Date, nullable=False)

    users_referred   = db.Column(db.Integer, nullable=False, default=0)
    brokers_referred = db.Column(db.Integer, nullable=False, default=0)

    stats = db.relationship("ReferralStats", back_populates="daily_stats")

    __table_args__ = (
        db.UniqueConstraint("stats_id", "day", name="uq_referral_daily_stats_day"),
    )
