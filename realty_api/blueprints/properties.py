from decimal import Decimal, InvalidOperation

from flask import Blueprint, request

from realty_api.extensions import db
from realty_api.common.auth import requires_roles, current_identity
from realty_api.common.deferred import defer
from realty_api.common.errors import ValidationError
from realty_api.common.http import ok, money, iso
from realty_api.models.property import Property, PROPERTY_TYPES, TRANSACTION_TYPES
from realty_api.models.user import User, BROKER_TYPES
from realty_api.services.referral_service import on_broker_first_property_listed

bp = Blueprint("properties", __name__, url_prefix="/api/v1/properties")


def _row(p: Property):
    return {
        "id": p.id,
        "brokerId": p.broker_id,
        "title": p.title,
        "description": p.description,
        "propertyType": p.property_type,
        "transactionType": p.transaction_type,
        "price": money(p.price),
        "city": p.city,
        "createdAt": iso(p.created_at),
    }


@bp.post("")
@requires_roles("broker", "sub_broker")
def create_property():
    data = request.get_json(silent=True, force=True) or {}
    _, uid = current_identity()

    broker_id = uid
    caller = db.session.get(User, uid)
    if caller and caller.user_type == "admin":
        # admins list on behalf of a broker
        broker_id = data.get("brokerId")
        broker = db.session.get(User, broker_id) if broker_id else None
        if not broker or broker.user_type not in BROKER_TYPES:
            raise ValidationError("brokerId must reference a broker")

    title = (data.get("title") or "").strip()
    description = (data.get("description") or "").strip()
    if not title or not description:
        raise ValidationError("title and description are required")
    if data.get("propertyType") not in PROPERTY_TYPES:
        raise ValidationError(f"propertyType must be one of {', '.join(PROPERTY_TYPES)}")
    if data.get("transactionType") not in TRANSACTION_TYPES:
        raise ValidationError(f"transactionType must be one of {', '.join(TRANSACTION_TYPES)}")
    try:
        price = Decimal(str(data.get("price")))
    except (InvalidOperation, ValueError):
        raise ValidationError("price must be a number")
    if not price.is_finite() or price < 0:
        raise ValidationError("price must be >= 0")

    p = Property(
        broker_id=broker_id,
        title=title,
        description=description,
        property_type=data["propertyType"],
        transaction_type=data["transactionType"],
        price=price,
        city=(data.get("city") or "").strip() or None,
    )
    db.session.add(p)
    db.session.commit()

    defer(on_broker_first_property_listed, broker_id)
    return ok(_row(p), status=201)
