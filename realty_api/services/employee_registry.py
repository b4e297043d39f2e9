from __future__ import annotations

import logging
import random
import string
from datetime import datetime
from typing import Callable, Optional

from flask import current_app, has_app_context
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError

from realty_api.extensions import db
from realty_api.common.errors import (
    DuplicateCodeError,
    DuplicateEmailError,
    InvalidReferralCodeError,
    NotFoundError,
    ValidationError,
)
from realty_api.models.employee import Employee, EMPLOYEE_ROLES
from realty_api.services.commission import CommissionRates

log = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 20

_REFERRAL_ALPHABET = string.ascii_uppercase + string.digits

# request field -> column
_RATE_FIELDS = {
    "userRegistration": "rate_user_registration",
    "brokerRegistration": "rate_broker_registration",
    "brokerFirstProperty": "rate_broker_first_property",
}
_BONUS_FIELDS = {
    "userTarget": ("bonus_user_achievement", "bonus_user_amount"),
    "brokerTarget": ("bonus_broker_achievement", "bonus_broker_amount"),
}
_TARGET_FIELDS = {
    ("monthly", "users"): "target_monthly_users",
    ("monthly", "brokers"): "target_monthly_brokers",
    ("quarterly", "users"): "target_quarterly_users",
    ("quarterly", "brokers"): "target_quarterly_brokers",
}


# ---------- code generation ----------

def make_employee_code(now: Optional[datetime] = None) -> str:
    year = (now or datetime.utcnow()).year
    return f"SNK{year}{random.randint(1000, 9999)}"


def make_referral_code() -> str:
    return "EMP" + "".join(random.choices(_REFERRAL_ALPHABET, k=4))


def _max_attempts() -> int:
    if has_app_context():
        return int(current_app.config.get("REFERRAL_CODE_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS))
    return DEFAULT_MAX_ATTEMPTS


def generate_unique_code(factory: Callable[[], str], column, max_attempts: Optional[int] = None) -> str:
    """
    Retry-until-unique with a hard cap. Each candidate is checked against
    existing rows before it is accepted; exhausting the cap raises
    DuplicateCodeError instead of looping forever.
    """
    attempts = max_attempts or _max_attempts()
    for _ in range(attempts):
        candidate = factory()
        taken = db.session.scalar(select(Employee.id).where(column == candidate))
        if taken is None:
            return candidate
    log.error("code generation for %s exhausted %d attempts", column, attempts)
    raise DuplicateCodeError(payload={"column": str(column), "attempts": attempts})


# ---------- rate / target payloads ----------

def _apply_rates(emp: Employee, rates: Optional[dict]):
    if not rates:
        return
    for key, col in _RATE_FIELDS.items():
        if key in rates and rates[key] is not None:
            setattr(emp, col, _non_negative(rates[key], key))
    monthly = rates.get("monthlyBonus") or {}
    for key, (ach_col, amt_col) in _BONUS_FIELDS.items():
        rule = monthly.get(key) or {}
        if rule.get("achievement") is not None:
            setattr(emp, ach_col, _non_negative_int(rule["achievement"], f"{key}.achievement"))
        if rule.get("bonus") is not None:
            setattr(emp, amt_col, _non_negative(rule["bonus"], f"{key}.bonus"))


def _apply_targets(emp: Employee, targets: Optional[dict]):
    if not targets:
        return
    for (span, kind), col in _TARGET_FIELDS.items():
        val = (targets.get(span) or {}).get(kind)
        if val is not None:
            setattr(emp, col, _non_negative_int(val, f"{span}.{kind}"))


def _non_negative(val, field_name):
    try:
        num = float(val)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be a number")
    if num < 0:
        raise ValidationError(f"{field_name} must be >= 0")
    return val


def _non_negative_int(val, field_name) -> int:
    num = float(_non_negative(val, field_name))
    if not num.is_integer():
        raise ValidationError(f"{field_name} must be a whole number")
    return int(num)


def _text(val, field_name, strip=True) -> str:
    if val is None:
        return ""
    if not isinstance(val, str):
        raise ValidationError(f"{field_name} must be a string")
    return val.strip() if strip else val


def _email_taken(email: str, exclude_id: Optional[int] = None) -> bool:
    q = select(Employee.id).where(Employee.email == email)
    if exclude_id is not None:
        q = q.where(Employee.id != exclude_id)
    return db.session.scalar(q) is not None


# ---------- registry operations ----------

def create_employee(profile: dict, rates: Optional[dict] = None, targets: Optional[dict] = None) -> Employee:
    name = _text(profile.get("name"), "name")
    email = _text(profile.get("email"), "email").lower()
    phone = _text(profile.get("phone"), "phone")
    password = _text(profile.get("password"), "password", strip=False)
    role = profile.get("role") or "field_agent"

    missing = [k for k, v in (("name", name), ("email", email), ("phone", phone), ("password", password)) if not v]
    if missing:
        raise ValidationError("Missing required fields", payload={"fields": missing})
    if len(password) < 6:
        raise ValidationError("password must be at least 6 characters")
    if role not in EMPLOYEE_ROLES:
        raise ValidationError(f"role must be one of {', '.join(EMPLOYEE_ROLES)}")

    if _email_taken(email):
        raise DuplicateEmailError(email)

    emp = Employee(
        name=name,
        email=email,
        phone=phone,
        role=role,
        is_active=True,
        bank_details=profile.get("bank_details"),
        address=profile.get("address"),
        employee_code=generate_unique_code(make_employee_code, Employee.employee_code),
        referral_code=generate_unique_code(make_referral_code, Employee.referral_code),
    )
    emp.set_password(password)
    _apply_rates(emp, rates)
    _apply_targets(emp, targets)

    db.session.add(emp)
    try:
        db.session.commit()
    except IntegrityError:
        # lost a race between the uniqueness check and the insert
        db.session.rollback()
        if _email_taken(email):
            raise DuplicateEmailError(email)
        raise DuplicateCodeError()

    log.info("employee %s created with referral code %s", emp.employee_code, emp.referral_code)
    return emp


def get_employee(employee_id: int) -> Employee:
    emp = db.session.get(Employee, employee_id)
    if not emp:
        raise NotFoundError("Employee not found")
    return emp


def validate_referral_code(code: Optional[str]) -> Employee:
    """Case-insensitive lookup among active employees."""
    normalized = (code or "").strip().upper()
    if not normalized:
        raise InvalidReferralCodeError(code)
    emp = db.session.scalar(
        select(Employee).where(Employee.referral_code == normalized, Employee.is_active.is_(True))
    )
    if not emp:
        raise InvalidReferralCodeError(normalized)
    return emp


def get_rate_config(employee_id: int) -> CommissionRates:
    """Current rates; there is no rate history."""
    return CommissionRates.from_employee(get_employee(employee_id))


def update_employee(employee_id: int, data: dict) -> Employee:
    emp = get_employee(employee_id)
    try:
        _apply_update(emp, data)
    except (ValidationError, DuplicateEmailError):
        # nothing half-applied may ride along with the next commit
        db.session.rollback()
        raise
    db.session.commit()
    return emp


def _apply_update(emp: Employee, data: dict):
    email = _text(data.get("email"), "email").lower()
    if email:
        if email != emp.email and _email_taken(email, exclude_id=emp.id):
            raise DuplicateEmailError(email)
        emp.email = email
    for key in ("name", "phone"):
        val = _text(data.get(key), key)
        if val:
            setattr(emp, key, val)
    if "role" in data:
        if data["role"] not in EMPLOYEE_ROLES:
            raise ValidationError(f"role must be one of {', '.join(EMPLOYEE_ROLES)}")
        emp.role = data["role"]
    if "is_active" in data:
        emp.is_active = bool(data["is_active"])
    for key in ("bank_details", "address"):
        if key in data:
            setattr(emp, key, data[key])
    password = _text(data.get("password"), "password", strip=False)
    if password:
        if len(password) < 6:
            raise ValidationError("password must be at least 6 characters")
        emp.set_password(password)

    _apply_rates(emp, data.get("commission_rates"))
    _apply_targets(emp, data.get("targets"))


def delete_employee(employee_id: int) -> None:
    emp = get_employee(employee_id)
    db.session.delete(emp)
    db.session.commit()
    log.info("employee %s deleted; ledger rows keep employee_id=%s", emp.employee_code, employee_id)


def authenticate_employee(email: str, password: str) -> Optional[Employee]:
    email = (email or "").strip().lower()
    emp = db.session.scalar(select(Employee).where(Employee.email == email, Employee.is_active.is_(True)))
    if not emp or not emp.check_password(password or ""):
        return None
    emp.last_login = datetime.utcnow()
    db.session.commit()
    return emp


def list_employees(search: Optional[str] = None, role: Optional[str] = None,
                   is_active: Optional[bool] = None, page: int = 1, size: int = 10):
    """Returns (rows, total)."""
    q = Employee.query
    if search:
        like = f"%{search}%"
        q = q.filter(or_(
            Employee.name.ilike(like),
            Employee.email.ilike(like),
            Employee.employee_code.ilike(like),
            Employee.referral_code.ilike(like),
        ))
    if role:
        q = q.filter(Employee.role == role)
    if is_active is not None:
        q = q.filter(Employee.is_active.is_(is_active))

    total = q.count()
    rows = (
        q.order_by(Employee.created_at.desc(), Employee.id.desc())
        .offset((page - 1) * size)
        .limit(size)
        .all()
    )
    return rows, total
