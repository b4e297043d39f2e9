# realty_api/common/errors.py
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException
from realty_api.extensions import db
from .http import fail


class APIError(Exception):
    """Custom API Error class."""
    status_code = 400
    code = "BAD_REQUEST"

    def __init__(self, code=None, message=None, status_code=None, payload=None):
        super().__init__(message)
        self.code = code or self.code
        self.message = message or self.code
        if status_code is not None:
            self.status_code = status_code
        self.payload = payload


class NotFoundError(APIError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, message="Not found", payload=None):
        super().__init__(message=message, payload=payload)


class ValidationError(APIError):
    status_code = 422
    code = "VALIDATION_ERROR"

    def __init__(self, message, payload=None):
        super().__init__(message=message, payload=payload)


class DuplicateEmailError(APIError):
    status_code = 409
    code = "DUPLICATE_EMAIL"

    def __init__(self, email=None):
        super().__init__(message="Email already registered", payload={"email": email} if email else None)


class DuplicateCodeError(APIError):
    status_code = 409
    code = "DUPLICATE_CODE"

    def __init__(self, message="Could not allocate a unique code", payload=None):
        super().__init__(message=message, payload=payload)


class InvalidReferralCodeError(APIError):
    status_code = 404
    code = "INVALID_REFERRAL_CODE"

    def __init__(self, referral_code=None):
        super().__init__(message="Invalid referral code",
                         payload={"referral_code": referral_code} if referral_code else None)


class InconsistentLedgerWriteError(APIError):
    status_code = 500
    code = "INCONSISTENT_LEDGER_WRITE"

    def __init__(self, message="Referral ledger write failed and was rolled back", payload=None):
        super().__init__(message=message, payload=payload)


def register_error_handlers(app):
    @app.errorhandler(APIError)
    def _api_error(e: APIError):
        return fail(message=e.message, status=e.status_code, code=e.code, detail=e.payload)

    @app.errorhandler(HTTPException)
    def _http(e: HTTPException):
        return fail(e.description or e.name, status=e.code or 500)

    @app.errorhandler(IntegrityError)
    def _dup(e: IntegrityError):
        db.session.rollback()
        return fail("Duplicate or FK constraint failed", status=409, code="CONSTRAINT_ERROR")

    @app.errorhandler(Exception)
    def _500(e: Exception):
        app.logger.exception(e)
        return fail("Internal server error", status=500)
