from flask import Blueprint, current_app, request

from realty_api.common.auth import requires_roles
from realty_api.common.errors import ValidationError
from realty_api.common.http import ok
from realty_api.common.paging import int_arg, parse_date, year_month_args
from realty_api.services import referral_ledger as ledger
from realty_api.services import referral_service as referrals

bp = Blueprint("referrals", __name__, url_prefix="/api/v1/referrals")


def _date_range():
    """startDate/endDate query args; both default to the current month."""
    today = ledger.utcnow().date()
    start = parse_date(request.args.get("startDate"), "startDate") or today.replace(day=1)
    end = parse_date(request.args.get("endDate"), "endDate") or today
    if start > end:
        raise ValidationError("startDate must not be after endDate")
    return start, end


def _body_year_month(data: dict):
    today = ledger.utcnow().date()
    try:
        year = int(data.get("year") or today.year)
        month = int(data.get("month") or today.month)
    except (TypeError, ValueError):
        raise ValidationError("year and month must be integers")
    if not 1 <= month <= 12:
        raise ValidationError("month must be 1..12")
    return year, month


@bp.get("/top-performers")
@requires_roles("admin")
def top_performers():
    year, month = year_month_args(ledger.utcnow().date())
    limit = int_arg("limit", current_app.config.get("REFERRAL_TOP_PERFORMERS_LIMIT", 10))
    if limit < 1:
        raise ValidationError("limit must be >= 1")
    sort_by = request.args.get("sortBy") or "totalCommission"
    if sort_by not in ledger.SORT_KEYS:
        sort_by = "totalCommission"
    rows = ledger.get_top_performers(year, month, limit, sort_by)
    return ok(rows, period=ledger.period_key(year, month), sortBy=sort_by)


@bp.get("/unpaid")
@requires_roles("admin")
def unpaid():
    return ok(referrals.get_unpaid_commissions())


@bp.get("/analytics")
@requires_roles("admin")
def analytics():
    start, end = _date_range()
    return ok(referrals.get_referral_analytics(start, end))


@bp.get("/employees/<int:employee_id>/performance")
@requires_roles("admin")
def performance(employee_id: int):
    start, end = _date_range()
    return ok(referrals.get_employee_performance(employee_id, start, end))


@bp.get("/employees/<int:employee_id>/commission")
@requires_roles("admin")
def commission(employee_id: int):
    year, month = year_month_args(ledger.utcnow().date())
    return ok(referrals.calculate_monthly_commission(employee_id, year, month))


@bp.post("/employees/<int:employee_id>/calculate")
@requires_roles("admin")
def calculate(employee_id: int):
    year, month = _body_year_month(request.get_json(silent=True) or {})
    period = ledger.period_key(year, month)
    total = ledger.calculate_earnings(employee_id, period)
    stats = ledger.get_period(employee_id, year, month)
    return ok({"period": period, "totalCommission": float(total), "stats": referrals.stats_row(stats)})


@bp.post("/employees/<int:employee_id>/mark-paid")
@requires_roles("admin")
def mark_paid(employee_id: int):
    data = request.get_json(silent=True) or {}
    year, month = _body_year_month(data)
    stats = referrals.mark_paid(employee_id, year, month, data.get("paidAmount"), data.get("paymentReference"))
    return ok(referrals.stats_row(stats))
