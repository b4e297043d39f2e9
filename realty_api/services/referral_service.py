from __future__ import annotations

import logging
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy import case, func, select, update

from realty_api.extensions import db
from realty_api.common.deferred import defer
from realty_api.common.errors import NotFoundError, ValidationError
from realty_api.common.http import iso, money
from realty_api.models.employee import Employee
from realty_api.models.referral import ReferralStats
from realty_api.models.user import User, BROKER_TYPES
from realty_api.services import employee_registry as registry
from realty_api.services import referral_ledger as ledger
from realty_api.services.commission import CommissionRates, LedgerCounts, compute_commission

log = logging.getLogger(__name__)

TREND_MONTHS = 6
RECENT_REFERRALS = 10


def stats_row(s: Optional[ReferralStats]) -> dict:
    if s is None:
        return {
            "period": None, "usersReferred": 0, "brokersReferred": 0, "brokerFirstProperties": 0,
            "totalEarnings": 0.0, "bonusEarnings": 0.0, "totalCommission": 0.0, "isPaid": False,
        }
    return {
        "id": s.id,
        "employeeId": s.employee_id,
        "year": s.year,
        "month": s.month,
        "period": s.period,
        "usersReferred": s.users_referred,
        "brokersReferred": s.brokers_referred,
        "brokerFirstProperties": s.broker_first_properties,
        "totalEarnings": money(s.total_earnings),
        "bonusEarnings": money(s.bonus_earnings),
        "totalCommission": money(s.total_commission),
        "isPaid": s.is_paid,
        "paidDate": iso(s.paid_date),
        "paidAmount": money(s.paid_amount),
        "paymentReference": s.payment_reference,
    }


# ---------- event hooks ----------

def on_user_registered(referral_code: Optional[str], subject_id: int, subject_type: str) -> Optional[Employee]:
    """
    Link a freshly registered user/broker to the employee owning ``referral_code``
    and schedule the commission booking.

    An unknown code raises InvalidReferralCodeError to the caller, which must
    keep the registration itself. The ledger write is deferred and best-effort.
    """
    if not referral_code:
        return None
    employee = registry.validate_referral_code(referral_code)

    subject = db.session.get(User, subject_id)
    if subject is None:
        raise NotFoundError("Referred user not found")
    if subject_type in BROKER_TYPES:
        subject_type = "broker"
    subject_type = subject_type or subject.subject_type
    subject.referred_by_id = employee.id
    subject.referral_code = employee.referral_code
    subject.referral_date = ledger.utcnow()
    db.session.commit()

    defer(track_referral, employee.id, subject_id, subject_type)
    return employee


def track_referral(employee_id: int, subject_id: int, subject_type: str):
    """Book the flat registration commission in the current period."""
    rates = registry.get_rate_config(employee_id)
    commission = rates.for_subject(subject_type)
    stats = ledger.add_referral(employee_id, ledger.current_period(), subject_id, subject_type, commission)
    log.info("referral tracked: employee=%s %s=%s commission=%s period=%s",
             employee_id, subject_type, subject_id, commission, stats.period)
    return stats


def on_broker_first_property_listed(broker_id: int) -> bool:
    """
    Award the one-time first-property bonus. The flag is claimed with a
    conditional UPDATE, so only one caller per broker ever books the bonus.
    """
    broker = db.session.get(User, broker_id)
    if broker is None or broker.user_type not in BROKER_TYPES:
        return False
    if broker.is_first_property_listed:
        return False

    now = ledger.utcnow()
    claimed = db.session.execute(
        update(User)
        .where(User.id == broker_id, User.is_first_property_listed.is_(False))
        .values(is_first_property_listed=True, first_property_date=now),
        execution_options={"synchronize_session": False},
    ).rowcount
    db.session.commit()
    if claimed != 1:
        return False

    db.session.refresh(broker)
    if not broker.referred_by_id:
        return True

    employee = db.session.get(Employee, broker.referred_by_id)
    if employee is None:
        return True
    commission = CommissionRates.from_employee(employee).broker_first_property
    ledger.add_referral(employee.id, ledger.current_period(), broker.id, "broker", commission, is_first_property=True)
    log.info("first property bonus tracked for %s: broker %s", employee.name, broker.full_name)
    return True


# ---------- queries ----------

def get_employee_performance(employee_id: int, start_date: date, end_date: date) -> dict:
    employee = registry.get_employee(employee_id)
    periods = ledger.periods_between(start_date, end_date)

    rows = db.session.execute(
        select(ReferralStats).where(ReferralStats.employee_id == employee_id, ReferralStats.period.in_(periods))
    ).scalars().all()
    by_period = {r.period: r for r in rows}

    totals = {"usersReferred": 0, "brokersReferred": 0, "brokerFirstProperties": 0,
              "totalEarnings": 0.0, "totalPaid": 0.0}
    breakdown = []
    for p in periods:
        s = by_period.get(p)
        row = stats_row(s)
        row["period"] = p
        breakdown.append(row)
        if s is None:
            continue
        totals["usersReferred"] += s.users_referred
        totals["brokersReferred"] += s.brokers_referred
        totals["brokerFirstProperties"] += s.broker_first_properties
        totals["totalEarnings"] += money(s.total_commission)
        if s.is_paid:
            totals["totalPaid"] += money(s.total_commission)

    return {
        "employee": {
            "id": employee.id,
            "employeeName": employee.name,
            "employeeCode": employee.employee_code,
            "referralCode": employee.referral_code,
        },
        "period": {"start": start_date.isoformat(), "end": end_date.isoformat()},
        "periods": periods,
        "totals": totals,
        "monthlyBreakdown": breakdown,
    }


def get_unpaid_commissions() -> dict:
    commission = ReferralStats.total_earnings + ReferralStats.bonus_earnings
    rows = (
        db.session.query(ReferralStats, Employee.name, Employee.referral_code)
        .join(Employee, Employee.id == ReferralStats.employee_id)
        .filter(ReferralStats.is_paid.is_(False), commission > 0)
        .order_by(ReferralStats.employee_id.asc(), ReferralStats.year.asc(), ReferralStats.month.asc())
        .all()
    )

    grouped: dict = {}
    for s, name, code in rows:
        entry = grouped.setdefault(s.employee_id, {
            "employeeId": s.employee_id,
            "employeeName": name,
            "referralCode": code,
            "totalUnpaid": 0.0,
            "unpaidPeriods": [],
        })
        amount = money(s.total_commission)
        entry["totalUnpaid"] += amount
        entry["unpaidPeriods"].append({
            "period": s.period,
            "amount": amount,
            "usersReferred": s.users_referred,
            "brokersReferred": s.brokers_referred,
        })

    employees = sorted(grouped.values(), key=lambda e: e["totalUnpaid"], reverse=True)
    return {
        "summary": {
            "totalAmount": sum(e["totalUnpaid"] for e in employees),
            "employeeCount": len(employees),
        },
        "employees": employees,
    }


def get_referral_analytics(start_date: date, end_date: date) -> dict:
    """
    Reporting view built from the referred users themselves, not from the
    ledger counters. The two can disagree if a ledger write was lost.
    """
    if start_date > end_date:
        raise ValidationError("start date must not be after end date")
    start = datetime.combine(start_date, time.min)
    end = datetime.combine(end_date, time.max)

    rows = (
        db.session.query(User.user_type, Employee.id, Employee.name, Employee.referral_code)
        .join(Employee, Employee.id == User.referred_by_id)
        .filter(User.referral_date >= start, User.referral_date <= end)
        .all()
    )

    per_employee: dict = {}
    total_users = total_brokers = 0
    for user_type, emp_id, name, code in rows:
        acc = per_employee.setdefault(emp_id, {
            "employee": {"id": emp_id, "name": name, "referralCode": code},
            "users": 0, "brokers": 0, "total": 0,
        })
        if user_type in BROKER_TYPES:
            acc["brokers"] += 1
            total_brokers += 1
        else:
            acc["users"] += 1
            total_users += 1
        acc["total"] += 1

    breakdown = sorted(per_employee.values(), key=lambda a: a["total"], reverse=True)
    return {
        "summary": {
            "totalReferrals": len(rows),
            "totalUsers": total_users,
            "totalBrokers": total_brokers,
            "activeEmployees": len(breakdown),
        },
        "employeeBreakdown": breakdown,
    }


def calculate_monthly_commission(employee_id: int, year: int, month: int) -> dict:
    employee = registry.get_employee(employee_id)
    stats = ledger.get_period(employee_id, year, month)
    result = compute_commission(LedgerCounts.of(stats), CommissionRates.from_employee(employee))
    out = result.as_dict()
    out["period"] = ledger.period_key(year, month)
    return out


def mark_paid(employee_id: int, year: int, month: int, amount, reference: Optional[str] = None) -> ReferralStats:
    if amount is None:
        raise ValidationError("paidAmount is required")
    try:
        amount = Decimal(str(amount))
    except InvalidOperation:
        raise ValidationError("paidAmount must be a number")
    if not amount.is_finite() or amount < 0:
        raise ValidationError("paidAmount must be >= 0")
    return ledger.mark_paid(employee_id, ledger.period_key(year, month), amount, reference)


def _trend_periods(today: date, months: int):
    year, month = today.year, today.month
    out = []
    for _ in range(months):
        out.append(ledger.period_key(year, month))
        year, month = (year - 1, 12) if month == 1 else (year, month - 1)
    return list(reversed(out))


def get_employee_dashboard(employee_id: int) -> dict:
    employee = registry.get_employee(employee_id)
    now = ledger.utcnow()
    period = ledger.period_key(now.year, now.month)

    current = ledger.get_period(employee_id, now.year, now.month)

    commission = ReferralStats.total_earnings + ReferralStats.bonus_earnings
    agg = db.session.execute(
        select(
            func.coalesce(func.sum(ReferralStats.users_referred), 0),
            func.coalesce(func.sum(ReferralStats.brokers_referred), 0),
            func.coalesce(func.sum(commission), 0),
            func.coalesce(func.sum(case((ReferralStats.is_paid.is_(True), commission), else_=0)), 0),
        ).where(ReferralStats.employee_id == employee_id)
    ).one()

    trend_periods = _trend_periods(now.date(), TREND_MONTHS)
    trend = db.session.execute(
        select(ReferralStats)
        .where(ReferralStats.employee_id == employee_id, ReferralStats.period.in_(trend_periods))
        .order_by(ReferralStats.year.asc(), ReferralStats.month.asc())
    ).scalars().all()

    recent = (
        User.query.filter(User.referred_by_id == employee_id)
        .order_by(User.referral_date.desc(), User.id.desc())
        .limit(RECENT_REFERRALS)
        .all()
    )

    current_row = stats_row(current)
    current_row["period"] = period
    return {
        "employee": {
            "employeeName": employee.name,
            "employeeCode": employee.employee_code,
            "referralCode": employee.referral_code,
            "targets": employee.targets,
        },
        "currentPeriod": current_row,
        "allTime": {
            "totalUsers": int(agg[0] or 0),
            "totalBrokers": int(agg[1] or 0),
            "totalEarnings": money(agg[2]),
            "totalPaid": money(agg[3]),
        },
        "monthlyTrend": [stats_row(s) for s in trend],
        "recentReferrals": [
            {
                "id": u.id,
                "fullName": u.full_name,
                "email": u.email,
                "userType": u.user_type,
                "referralDate": iso(u.referral_date),
            }
            for u in recent
        ],
    }


def get_overview(year: int, month: int, top: int = 5) -> dict:
    period = ledger.period_key(year, month)
    commission = ReferralStats.total_earnings + ReferralStats.bonus_earnings
    agg = db.session.execute(
        select(
            func.count(func.distinct(ReferralStats.employee_id)),
            func.coalesce(func.sum(ReferralStats.users_referred), 0),
            func.coalesce(func.sum(ReferralStats.brokers_referred), 0),
            func.coalesce(func.sum(commission), 0),
            func.coalesce(func.sum(case((ReferralStats.is_paid.is_(True), commission), else_=0)), 0),
            func.coalesce(func.sum(case((ReferralStats.is_paid.is_(False), commission), else_=0)), 0),
        ).where(ReferralStats.period == period)
    ).one()

    return {
        "period": period,
        "overview": {
            "activeEmployees": int(agg[0] or 0),
            "totalUsers": int(agg[1] or 0),
            "totalBrokers": int(agg[2] or 0),
            "totalEarnings": money(agg[3]),
            "totalPaid": money(agg[4]),
            "pendingPayment": money(agg[5]),
        },
        "topPerformers": ledger.get_top_performers(year, month, top),
    }
