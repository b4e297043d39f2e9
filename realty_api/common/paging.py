# realty_api/common/paging.py
from datetime import datetime, date
from flask import request

from realty_api.common.errors import ValidationError

DEFAULT_PAGE = 1
DEFAULT_SIZE = 10
MAX_SIZE = 100

def page_limit():
    """
    page (default 1), limit or size (default 10), clamped to [1,100].
    """
    try:
        page = max(int(request.args.get("page", DEFAULT_PAGE)), 1)
    except Exception:
        page = DEFAULT_PAGE
    raw = request.args.get("limit", request.args.get("size"))
    try:
        size = int(raw) if raw is not None else DEFAULT_SIZE
        size = max(1, min(size, MAX_SIZE))
    except Exception:
        size = DEFAULT_SIZE
    return page, size

def text_q(*names: str):
    for n in names or ("q",):
        q = (request.args.get(n) or "").strip()
        if q:
            return q
    return None

def bool_arg(name: str):
    if name not in request.args:
        return None
    v = (request.args.get(name) or "").lower()
    if v in ("true", "1", "yes"):  return True
    if v in ("false", "0", "no"):  return False
    raise ValidationError(f"{name} must be true/false")

def int_arg(name: str, default=None):
    v = request.args.get(name)
    if v in (None, "", "null"):
        return default
    try:
        return int(v)
    except ValueError:
        raise ValidationError(f"{name} must be integer")

def parse_date(val, field_name="date"):
    if not val:
        return None
    if isinstance(val, date):
        return val
    for fmt in ("%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%d-%m-%Y", "%Y/%m/%d"):
        try:
            return datetime.strptime(val, fmt).date()
        except ValueError:
            pass
    raise ValidationError(f"{field_name} must be YYYY-MM-DD")

def year_month_args(default: date):
    year = int_arg("year", default.year)
    month = int_arg("month", default.month)
    if not 1 <= month <= 12:
        raise ValidationError("month must be 1..12")
    return year, month
