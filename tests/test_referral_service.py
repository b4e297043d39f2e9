from datetime import date
from decimal import Decimal

import pytest

from realty_api.common.errors import InvalidReferralCodeError, NotFoundError, ValidationError
from realty_api.extensions import db
from realty_api.models.referral import ReferralEvent, ReferralStats
from realty_api.models.user import User
from realty_api.services import referral_ledger as ledger
from realty_api.services import referral_service as referrals


def test_registration_links_and_books_commission(make_employee, make_user, frozen_now):
    emp = make_employee()
    u = make_user()
    got = referrals.on_user_registered(emp.referral_code.lower(), u.id, "user")
    assert got.id == emp.id

    u = db.session.get(User, u.id)
    assert u.referred_by_id == emp.id
    assert u.referral_code == emp.referral_code
    assert u.referral_date == frozen_now

    stats = ledger.get_period(emp.id, 2024, 1)
    assert stats.users_referred == 1
    assert stats.total_earnings == Decimal("50")


def test_sub_broker_books_as_broker(make_employee, make_user, frozen_now):
    emp = make_employee()
    sub = make_user("sub_broker")
    referrals.on_user_registered(emp.referral_code, sub.id, "sub_broker")
    stats = ledger.get_period(emp.id, 2024, 1)
    assert stats.brokers_referred == 1
    assert stats.total_earnings == Decimal("200")


def test_invalid_code_leaves_user_untouched(make_user):
    u = make_user()
    with pytest.raises(InvalidReferralCodeError):
        referrals.on_user_registered("EMPNOPE", u.id, "user")
    assert db.session.get(User, u.id).referred_by_id is None
    assert ReferralStats.query.count() == 0


def test_no_code_is_a_noop(make_user):
    u = make_user()
    assert referrals.on_user_registered(None, u.id, "user") is None


def test_ledger_failure_does_not_undo_link(make_employee, make_user, frozen_now, monkeypatch):
    emp = make_employee()
    u = make_user()

    def boom(*a, **kw):
        raise RuntimeError("ledger down")

    monkeypatch.setattr(ledger, "add_referral", boom)
    referrals.on_user_registered(emp.referral_code, u.id, "user")
    assert db.session.get(User, u.id).referred_by_id == emp.id
    assert ReferralStats.query.count() == 0


def test_first_property_bonus_at_most_once(make_employee, make_user, frozen_now):
    emp = make_employee()
    broker = make_user("broker")
    referrals.on_user_registered(emp.referral_code, broker.id, "broker")

    assert referrals.on_broker_first_property_listed(broker.id) is True
    assert referrals.on_broker_first_property_listed(broker.id) is False
    assert referrals.on_broker_first_property_listed(broker.id) is False

    stats = ledger.get_period(emp.id, 2024, 1)
    assert stats.broker_first_properties == 1
    # registration and the first-property event both count as broker referrals
    assert stats.brokers_referred == 2
    assert stats.total_earnings == Decimal("700")
    assert ReferralEvent.query.filter_by(is_first_property=True).count() == 1

    b = db.session.get(User, broker.id)
    assert b.is_first_property_listed is True
    assert b.first_property_date == frozen_now


def test_first_property_without_referrer_sets_flag_only(make_user):
    broker = make_user("broker")
    assert referrals.on_broker_first_property_listed(broker.id) is True
    assert db.session.get(User, broker.id).is_first_property_listed is True
    assert ReferralStats.query.count() == 0


def test_first_property_ignores_plain_users(make_user):
    u = make_user()
    assert referrals.on_broker_first_property_listed(u.id) is False
    assert referrals.on_broker_first_property_listed(12345) is False


def test_performance_enumerates_every_period(make_employee):
    emp = make_employee()
    ledger.add_referral(emp.id, "2023-12", 1, "user", 50)
    ledger.add_referral(emp.id, "2024-01", 2, "broker", 200)
    ledger.add_referral(emp.id, "2024-05", 3, "broker", 200)
    ledger.mark_paid(emp.id, "2023-12", 50)

    out = referrals.get_employee_performance(emp.id, date(2023, 11, 5), date(2024, 2, 10))
    assert out["periods"] == ["2023-11", "2023-12", "2024-01", "2024-02"]
    assert [r["period"] for r in out["monthlyBreakdown"]] == out["periods"]
    assert out["monthlyBreakdown"][0]["usersReferred"] == 0
    assert out["totals"] == {
        "usersReferred": 1,
        "brokersReferred": 1,
        "brokerFirstProperties": 0,
        "totalEarnings": 250.0,
        "totalPaid": 50.0,
    }


def test_performance_unknown_employee(app):
    with pytest.raises(NotFoundError):
        referrals.get_employee_performance(404, date(2024, 1, 1), date(2024, 1, 31))


def test_unpaid_groups_by_employee(make_employee):
    a, b = make_employee(), make_employee()
    ledger.add_referral(a.id, "2024-01", 1, "user", 50)
    ledger.add_referral(a.id, "2024-02", 2, "broker", 200)
    ledger.add_referral(b.id, "2024-01", 3, "user", 50)
    ledger.mark_paid(b.id, "2024-01", 50)

    out = referrals.get_unpaid_commissions()
    assert out["summary"] == {"totalAmount": 250.0, "employeeCount": 1}
    entry = out["employees"][0]
    assert entry["employeeId"] == a.id
    assert [p["period"] for p in entry["unpaidPeriods"]] == ["2024-01", "2024-02"]


def test_analytics_counts_referred_users(make_employee, make_user, frozen_now):
    a, b = make_employee(), make_employee()
    for kind in ("user", "user", "broker"):
        u = make_user(kind)
        referrals.on_user_registered(a.referral_code, u.id, kind)
    u = make_user("sub_broker")
    referrals.on_user_registered(b.referral_code, u.id, "sub_broker")

    out = referrals.get_referral_analytics(date(2024, 1, 1), date(2024, 1, 31))
    assert out["summary"] == {"totalReferrals": 4, "totalUsers": 2, "totalBrokers": 2, "activeEmployees": 2}
    top = out["employeeBreakdown"][0]
    assert top["employee"]["id"] == a.id
    assert (top["users"], top["brokers"], top["total"]) == (2, 1, 3)

    empty = referrals.get_referral_analytics(date(2024, 2, 1), date(2024, 2, 28))
    assert empty["summary"]["totalReferrals"] == 0


def test_monthly_commission_without_row_is_zero(make_employee):
    emp = make_employee()
    out = referrals.calculate_monthly_commission(emp.id, 2024, 3)
    assert out["period"] == "2024-03"
    assert out["totalCommission"] == 0.0
    assert out["breakdown"]["usersReferred"] == 0


def test_mark_paid_validates_amount(make_employee, frozen_now):
    emp = make_employee()
    ledger.add_referral(emp.id, "2024-01", 1, "user", 50)
    with pytest.raises(ValidationError):
        referrals.mark_paid(emp.id, 2024, 1, None)
    with pytest.raises(ValidationError):
        referrals.mark_paid(emp.id, 2024, 1, "lots")
    stats = referrals.mark_paid(emp.id, 2024, 1, "50.00", "NEFT-1")
    assert stats.is_paid is True


def test_dashboard_and_overview(make_employee, make_user, frozen_now):
    emp = make_employee()
    u = make_user()
    referrals.on_user_registered(emp.referral_code, u.id, "user")
    ledger.add_referral(emp.id, "2023-12", 99, "broker", 200)
    ledger.mark_paid(emp.id, "2023-12", 200)

    dash = referrals.get_employee_dashboard(emp.id)
    assert dash["currentPeriod"]["period"] == "2024-01"
    assert dash["currentPeriod"]["usersReferred"] == 1
    assert dash["allTime"] == {"totalUsers": 1, "totalBrokers": 1, "totalEarnings": 250.0, "totalPaid": 200.0}
    assert [r["period"] for r in dash["monthlyTrend"]] == ["2023-12", "2024-01"]
    assert dash["recentReferrals"][0]["id"] == u.id

    ov = referrals.get_overview(2024, 1)
    assert ov["overview"]["activeEmployees"] == 1
    assert ov["overview"]["pendingPayment"] == 50.0
    assert ov["topPerformers"][0]["employeeId"] == emp.id
