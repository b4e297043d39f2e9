from __future__ import annotations

from flask import Blueprint, current_app, request
from flask_jwt_extended import create_access_token
from sqlalchemy import select

from realty_api.extensions import db
from realty_api.common.auth import requires_roles, current_identity
from realty_api.common.http import ok, fail, money, iso
from realty_api.common.paging import page_limit, text_q, bool_arg, year_month_args
from realty_api.models.employee import Employee
from realty_api.models.referral import ReferralStats
from realty_api.services import employee_registry as registry
from realty_api.services import referral_ledger as ledger
from realty_api.services import referral_service as referrals

bp = Blueprint("employees", __name__, url_prefix="/api/v1/employees")

RECENT_STATS = 6


# ---------- serializers ----------
def _row(e: Employee, with_rates=False):
    out = {
        "id": e.id,
        "employeeCode": e.employee_code,
        "referralCode": e.referral_code,
        "name": e.name,
        "email": e.email,
        "phone": e.phone,
        "role": e.role,
        "isActive": e.is_active,
        "joinDate": iso(e.join_date),
        "lastLogin": iso(e.last_login),
        "targets": e.targets,
    }
    if with_rates:
        out["commissionRates"] = registry.get_rate_config(e.id).as_dict()
        out["bankDetails"] = e.bank_details
        out["address"] = e.address
    return out


def _json():
    data = request.get_json(silent=True, force=True)
    return data if isinstance(data, dict) else {}


def _profile_update(data: dict) -> dict:
    """camelCase request body -> registry update keys."""
    out = {k: data[k] for k in ("name", "email", "phone", "role", "password") if k in data}
    if "isActive" in data:
        out["is_active"] = data["isActive"]
    if "bankDetails" in data:
        out["bank_details"] = data["bankDetails"]
    if "address" in data:
        out["address"] = data["address"]
    if "commissionRates" in data:
        out["commission_rates"] = data["commissionRates"]
    if "targets" in data:
        out["targets"] = data["targets"]
    return out


# ---------- auth ----------
@bp.post("/login")
def login():
    data = _json()
    emp = registry.authenticate_employee(data.get("email"), data.get("password"))
    if not emp:
        return fail("Invalid credentials", status=401)

    claims = {"roles": ["employee"], "kind": "employee", "email": emp.email, "name": emp.name}
    access = create_access_token(
        identity=str(emp.id),
        additional_claims=claims,
        expires_delta=current_app.config["EMPLOYEE_TOKEN_EXPIRES"],
    )
    return ok({"access": access, "employee": _row(emp)})


# ---------- admin CRUD ----------
@bp.post("")
@requires_roles("admin")
def create():
    data = _json()
    profile = {
        "name": data.get("name"),
        "email": data.get("email"),
        "phone": data.get("phone"),
        "password": data.get("password"),
        "role": data.get("role"),
        "bank_details": data.get("bankDetails"),
        "address": data.get("address"),
    }
    emp = registry.create_employee(profile, rates=data.get("commissionRates"), targets=data.get("targets"))
    return ok(_row(emp, with_rates=True), status=201)


@bp.get("")
@requires_roles("admin")
def list_():
    page, size = page_limit()
    rows, total = registry.list_employees(
        search=text_q("q", "search"),
        role=request.args.get("role") or None,
        is_active=bool_arg("isActive"),
        page=page,
        size=size,
    )

    # current-period counters for the listed page
    period = ledger.current_period()
    ids = [e.id for e in rows]
    stats = {}
    if ids:
        stats = {
            s.employee_id: s
            for s in db.session.execute(
                select(ReferralStats).where(ReferralStats.period == period, ReferralStats.employee_id.in_(ids))
            ).scalars()
        }

    items = []
    for e in rows:
        item = _row(e)
        s = stats.get(e.id)
        item["currentStats"] = {
            "period": period,
            "usersReferred": s.users_referred if s else 0,
            "brokersReferred": s.brokers_referred if s else 0,
            "totalEarnings": money(s.total_commission) if s else 0.0,
        }
        items.append(item)
    return ok(items, page=page, size=size, total=total)


@bp.get("/<int:employee_id>")
@requires_roles("admin")
def get(employee_id: int):
    emp = registry.get_employee(employee_id)
    recent = db.session.execute(
        select(ReferralStats)
        .where(ReferralStats.employee_id == employee_id)
        .order_by(ReferralStats.year.desc(), ReferralStats.month.desc())
        .limit(RECENT_STATS)
    ).scalars().all()
    out = _row(emp, with_rates=True)
    out["referralStats"] = [referrals.stats_row(s) for s in recent]
    return ok(out)


@bp.put("/<int:employee_id>")
@requires_roles("admin")
def update(employee_id: int):
    emp = registry.update_employee(employee_id, _profile_update(_json()))
    return ok(_row(emp, with_rates=True))


@bp.delete("/<int:employee_id>")
@requires_roles("admin")
def delete(employee_id: int):
    registry.delete_employee(employee_id)
    return ok({"id": employee_id, "deleted": True})


# ---------- dashboards ----------
@bp.get("/dashboard/stats")
@requires_roles("employee")
def dashboard():
    kind, uid = current_identity()
    if kind != "employee":
        return fail("Employee token required", status=403)
    return ok(referrals.get_employee_dashboard(uid))


@bp.get("/stats/overview")
@requires_roles("admin")
def overview():
    now = ledger.utcnow()
    year, month = year_month_args(now.date())
    return ok(referrals.get_overview(year, month))


# ---------- public ----------
@bp.get("/referral/validate/<code>")
def validate_code(code: str):
    emp = registry.validate_referral_code(code)
    return ok({"valid": True, "employeeName": emp.name, "referralCode": emp.referral_code})
