from flask import Blueprint, current_app, request
from flask_jwt_extended import create_access_token

from realty_api.extensions import db
from realty_api.common.errors import APIError, DuplicateEmailError, ValidationError
from realty_api.common.http import ok, fail, iso
from realty_api.models.user import User
from realty_api.services.referral_service import on_user_registered

bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")


def _user_payload(u: User):
    return {
        "id": u.id,
        "email": u.email,
        "fullName": u.full_name,
        "contactNumber": u.contact_number,
        "userType": u.user_type,
        "referredBy": u.referred_by_id,
        "referralDate": iso(u.referral_date),
    }


def _json():
    data = request.get_json(silent=True, force=True)
    return data if isinstance(data, dict) else {}


def _register(data: dict, user_type: str):
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    full_name = (data.get("fullName") or data.get("full_name") or "").strip()

    missing = [k for k, v in (("email", email), ("password", password), ("fullName", full_name)) if not v]
    if missing:
        raise ValidationError("Missing required fields", payload={"fields": missing})
    if len(password) < 6:
        raise ValidationError("password must be at least 6 characters")
    if User.query.filter_by(email=email).first():
        raise DuplicateEmailError(email)

    u = User(
        email=email,
        full_name=full_name,
        contact_number=(data.get("contactNumber") or "").strip() or None,
        location=(data.get("location") or "").strip() or None,
        user_type=user_type,
        is_active=True,
    )
    u.set_password(password)
    db.session.add(u)
    db.session.commit()

    # registration stands even when the referral code is rejected
    referral = {"linked": False}
    code = (data.get("referralCode") or "").strip()
    if code:
        try:
            emp = on_user_registered(code, u.id, u.subject_type)
            referral = {"linked": True, "referralCode": emp.referral_code}
        except APIError as e:
            current_app.logger.info("registration %s kept without referral: %s", u.id, e.code)
            referral = {"linked": False, "error": e.message, "code": e.code}

    db.session.refresh(u)
    return ok({"user": _user_payload(u), "referral": referral}, status=201)


@bp.post("/register")
def register():
    return _register(_json(), "user")


@bp.post("/brokers/register")
def register_broker():
    data = _json()
    user_type = data.get("userType") or "broker"
    if user_type not in ("broker", "sub_broker"):
        raise ValidationError("userType must be broker or sub_broker")
    return _register(data, user_type)


@bp.post("/login")
def login():
    data = _json()
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    u = User.query.filter_by(email=email).first()
    if not u or not u.is_active or not u.check_password(password):
        return fail("Invalid credentials", status=401)

    claims = {"roles": u.role_codes(), "kind": "user", "email": u.email}
    access = create_access_token(identity=str(u.id), additional_claims=claims)
    return ok({"access": access, "user": _user_payload(u)})

