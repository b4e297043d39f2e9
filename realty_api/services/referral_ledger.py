"""
Per-employee, per-period referral ledger.

A ledger row (``ReferralStats``) is keyed by ``(employee_id, "YYYY-MM")``.
Counters and ``total_earnings`` only move through ``add_referral``, which
bumps them with SQL-side increments in the same transaction that appends the
event row and the daily rollup, so counters always equal the event counts.
``calculate_earnings`` recomputes ``total_earnings``/``bonus_earnings`` from
the counters with the employee's *current* rates.
"""
from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from realty_api.extensions import db
from realty_api.common.errors import InconsistentLedgerWriteError, NotFoundError, ValidationError
from realty_api.models.employee import Employee
from realty_api.models.referral import ReferralDailyStat, ReferralEvent, ReferralStats, SUBJECT_TYPES
from realty_api.services.commission import CommissionRates, LedgerCounts, compute_commission

log = logging.getLogger(__name__)

SORT_KEYS = ("totalCommission", "totalReferred", "usersReferred", "brokersReferred")


def utcnow() -> datetime:
    return datetime.utcnow()


# ---------- periods ----------

def period_key(year: int, month: int) -> str:
    return f"{int(year)}-{int(month):02d}"


def parse_period(period: str) -> Tuple[int, int]:
    try:
        y, m = period.split("-")
        year, month = int(y), int(m)
    except (AttributeError, ValueError):
        raise ValidationError(f"period must be YYYY-MM, got {period!r}")
    if not 1 <= month <= 12 or len(period) != 7:
        raise ValidationError(f"period must be YYYY-MM, got {period!r}")
    return year, month


def current_period() -> str:
    now = utcnow()
    return period_key(now.year, now.month)


def periods_between(start: date, end: date) -> List[str]:
    """Every YYYY-MM touching [start, end], boundary months included."""
    if start > end:
        raise ValidationError("start date must not be after end date")
    out = []
    year, month = start.year, start.month
    while (year, month) <= (end.year, end.month):
        out.append(period_key(year, month))
        year, month = (year + 1, 1) if month == 12 else (year, month + 1)
    return out


# ---------- row access ----------

def get_period(employee_id: int, year: int, month: int) -> Optional[ReferralStats]:
    return db.session.scalar(
        select(ReferralStats).where(
            ReferralStats.employee_id == employee_id,
            ReferralStats.period == period_key(year, month),
        )
    )


def _find(employee_id: int, period: str) -> Optional[ReferralStats]:
    return db.session.scalar(
        select(ReferralStats).where(ReferralStats.employee_id == employee_id, ReferralStats.period == period)
    )


def _get_or_create(employee_id: int, period: str) -> ReferralStats:
    stats = _find(employee_id, period)
    if stats is not None:
        return stats

    year, month = parse_period(period)
    emp = db.session.get(Employee, employee_id)
    snapshot = CommissionRates.from_employee(emp).as_dict() if emp else None
    try:
        with db.session.begin_nested():
            stats = ReferralStats(
                employee_id=employee_id, year=year, month=month, period=period,
                users_referred=0, brokers_referred=0, broker_first_properties=0,
                total_earnings=0, bonus_earnings=0, rates_snapshot=snapshot,
            )
            db.session.add(stats)
    except IntegrityError:
        # a concurrent writer created the row first; the unique key settles it
        stats = _find(employee_id, period)
        if stats is None:
            raise
    return stats


def _bump_daily(stats_id: int, day: date, subject_type: str):
    row_id = db.session.scalar(
        select(ReferralDailyStat.id).where(ReferralDailyStat.stats_id == stats_id, ReferralDailyStat.day == day)
    )
    if row_id is None:
        try:
            with db.session.begin_nested():
                daily = ReferralDailyStat(stats_id=stats_id, day=day, users_referred=0, brokers_referred=0)
                db.session.add(daily)
            row_id = daily.id
        except IntegrityError:
            row_id = db.session.scalar(
                select(ReferralDailyStat.id).where(ReferralDailyStat.stats_id == stats_id, ReferralDailyStat.day == day)
            )

    col = ReferralDailyStat.users_referred if subject_type == "user" else ReferralDailyStat.brokers_referred
    db.session.execute(
        update(ReferralDailyStat).where(ReferralDailyStat.id == row_id).values({col: col + 1})
    )


# ---------- ledger operations ----------

def add_referral(employee_id: int, period: str, subject_id: int, subject_type: str,
                 commission, is_first_property: bool = False) -> ReferralStats:
    """
    Book one referral: upsert the period row, append the event, bump the
    matching counters and total_earnings, and roll the day up. All of it
    commits together or not at all.
    """
    if subject_type not in SUBJECT_TYPES:
        raise ValidationError(f"subject_type must be one of {', '.join(SUBJECT_TYPES)}")
    if is_first_property and subject_type != "broker":
        raise ValidationError("first-property bonus applies to broker subjects only")
    parse_period(period)
    amount = Decimal(str(commission or 0))
    now = utcnow()

    try:
        stats = _get_or_create(employee_id, period)

        values = {
            ReferralStats.total_earnings: ReferralStats.total_earnings + amount,
            ReferralStats.updated_at: now,
        }
        if subject_type == "user":
            values[ReferralStats.users_referred] = ReferralStats.users_referred + 1
        else:
            values[ReferralStats.brokers_referred] = ReferralStats.brokers_referred + 1
            if is_first_property:
                values[ReferralStats.broker_first_properties] = ReferralStats.broker_first_properties + 1
        db.session.execute(
            update(ReferralStats).where(ReferralStats.id == stats.id).values(values),
            execution_options={"synchronize_session": False},
        )

        db.session.add(ReferralEvent(
            stats_id=stats.id,
            subject_id=subject_id,
            subject_type=subject_type,
            commission=amount,
            is_first_property=bool(is_first_property),
            created_at=now,
        ))
        # backfills into another period carry no calendar day of their own
        if period == period_key(now.year, now.month):
            _bump_daily(stats.id, now.date(), subject_type)

        db.session.commit()
    except (ValidationError, NotFoundError):
        db.session.rollback()
        raise
    except SQLAlchemyError as e:
        db.session.rollback()
        log.exception("ledger write failed employee=%s period=%s subject=%s", employee_id, period, subject_id)
        raise InconsistentLedgerWriteError(payload={"employee_id": employee_id, "period": period}) from e

    db.session.refresh(stats)
    return stats


def calculate_earnings(employee_id: int, period: str) -> Decimal:
    """
    Full recompute from counters with current rates; overwrites
    total_earnings and bonus_earnings and returns their sum.
    """
    emp = db.session.get(Employee, employee_id)
    if not emp:
        raise NotFoundError("Employee not found")
    stats = _find(employee_id, period)
    if not stats:
        raise NotFoundError("Referral stats not found for the specified period")

    result = compute_commission(LedgerCounts.of(stats), CommissionRates.from_employee(emp))
    stats.total_earnings = result.base_commission
    stats.bonus_earnings = result.bonus_commission
    db.session.commit()
    return result.total_commission


def recalculate_period(year: int, month: int) -> int:
    """Recompute every ledger row of a period whose employee still exists."""
    period = period_key(year, month)
    rows = db.session.execute(
        select(ReferralStats.employee_id)
        .join(Employee, Employee.id == ReferralStats.employee_id)
        .where(ReferralStats.period == period)
    ).scalars().all()
    for employee_id in rows:
        calculate_earnings(employee_id, period)
    return len(rows)


def mark_paid(employee_id: int, period: str, amount, reference: Optional[str] = None) -> ReferralStats:
    """Sets the payment fields. Does not check amount against computed earnings."""
    stats = _find(employee_id, period)
    if not stats:
        raise NotFoundError("Referral stats not found for the specified period")
    stats.is_paid = True
    stats.paid_date = utcnow()
    stats.paid_amount = Decimal(str(amount or 0))
    stats.payment_reference = reference or ""
    db.session.commit()
    log.info("ledger %s/%s marked paid amount=%s ref=%s", employee_id, period, stats.paid_amount, reference)
    return stats


def get_top_performers(year: int, month: int, limit: int = 10, sort_by: str = "totalCommission") -> List[dict]:
    total_referred = (ReferralStats.users_referred + ReferralStats.brokers_referred).label("total_referred")
    total_commission = (ReferralStats.total_earnings + ReferralStats.bonus_earnings).label("total_commission")

    orderings = {
        "totalReferred": [total_referred.desc(), total_commission.desc()],
        "usersReferred": [ReferralStats.users_referred.desc()],
        "brokersReferred": [ReferralStats.brokers_referred.desc()],
    }
    order = orderings.get(sort_by, [total_commission.desc(), total_referred.desc()])

    q = (
        db.session.query(ReferralStats, Employee.name, Employee.referral_code, total_referred, total_commission)
        .join(Employee, Employee.id == ReferralStats.employee_id)
        .filter(ReferralStats.period == period_key(year, month))
        .order_by(*order, ReferralStats.id.asc())
        .limit(max(int(limit), 0))
    )

    out = []
    for rank, (s, name, code, referred, commission) in enumerate(q.all(), start=1):
        out.append({
            "rank": rank,
            "employeeId": s.employee_id,
            "employeeName": name,
            "referralCode": code,
            "usersReferred": s.users_referred,
            "brokersReferred": s.brokers_referred,
            "brokerFirstProperties": s.broker_first_properties,
            "totalReferred": int(referred or 0),
            "totalCommission": float(commission or 0),
            "isPaid": s.is_paid,
        })
    return out
