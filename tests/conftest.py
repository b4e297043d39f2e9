import os
from datetime import datetime

import pytest
from flask_jwt_extended import create_access_token

from realty_api import create_app
from realty_api.extensions import db
from realty_api.models.user import User
from realty_api.services import referral_ledger
from realty_api.services.employee_registry import create_employee


def _mk_app():
    os.environ["DATABASE_URL"] = "sqlite:///:memory:"
    app = create_app()
    app.config["TESTING"] = True
    return app


@pytest.fixture
def app():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def frozen_now(monkeypatch):
    """Pin the ledger clock to 2024-01-15 so the current period is 2024-01."""
    now = datetime(2024, 1, 15, 10, 30)
    monkeypatch.setattr(referral_ledger, "utcnow", lambda: now)
    return now


@pytest.fixture
def make_employee(app):
    seq = {"n": 0}

    def _make(name=None, **rates):
        seq["n"] += 1
        n = seq["n"]
        return create_employee(
            {
                "name": name or f"Agent {n}",
                "email": f"agent{n}@realty.test",
                "phone": f"90000000{n:02d}",
                "password": "secret123",
            },
            rates=rates or None,
        )
    return _make


@pytest.fixture
def make_user(app):
    seq = {"n": 0}

    def _make(user_type="user", **kw):
        seq["n"] += 1
        u = User(
            email=f"u{seq['n']}@realty.test",
            full_name=kw.pop("full_name", f"User {seq['n']}"),
            user_type=user_type,
            is_active=True,
            **kw,
        )
        u.set_password("secret123")
        db.session.add(u)
        db.session.commit()
        return u
    return _make


@pytest.fixture
def admin_headers(make_user):
    admin = make_user("admin")
    token = create_access_token(identity=str(admin.id), additional_claims={"roles": ["admin"], "kind": "user"})
    return {"Authorization": f"Bearer {token}"}
