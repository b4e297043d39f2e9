from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.exc import SQLAlchemyError

from realty_api.common.errors import InconsistentLedgerWriteError, NotFoundError, ValidationError
from realty_api.extensions import db
from realty_api.models.referral import ReferralDailyStat, ReferralEvent, ReferralStats
from realty_api.services import referral_ledger as ledger


def _events(stats_id, **filters):
    return ReferralEvent.query.filter_by(stats_id=stats_id, **filters).count()


def test_period_helpers():
    assert ledger.period_key(2024, 1) == "2024-01"
    assert ledger.parse_period("2023-12") == (2023, 12)
    with pytest.raises(ValidationError):
        ledger.parse_period("2023-13")
    with pytest.raises(ValidationError):
        ledger.parse_period("202312")


def test_periods_between_spans_year_boundary():
    assert ledger.periods_between(date(2023, 11, 20), date(2024, 2, 3)) == [
        "2023-11", "2023-12", "2024-01", "2024-02",
    ]
    assert ledger.periods_between(date(2024, 5, 1), date(2024, 5, 31)) == ["2024-05"]
    with pytest.raises(ValidationError):
        ledger.periods_between(date(2024, 2, 1), date(2024, 1, 1))


def test_two_broker_events_total_700(make_employee, frozen_now):
    emp = make_employee()
    ledger.add_referral(emp.id, "2024-01", 101, "broker", 200, False)
    stats = ledger.add_referral(emp.id, "2024-01", 102, "broker", 500, True)

    assert stats.brokers_referred == 2
    assert stats.broker_first_properties == 1
    assert stats.users_referred == 0
    assert stats.total_earnings == Decimal("700")
    assert ReferralStats.query.filter_by(employee_id=emp.id).count() == 1


def test_counters_equal_event_counts(make_employee, frozen_now):
    emp = make_employee()
    for i in range(3):
        ledger.add_referral(emp.id, "2024-01", i, "user", 50)
    ledger.add_referral(emp.id, "2024-01", 10, "broker", 200)
    stats = ledger.add_referral(emp.id, "2024-01", 10, "broker", 500, is_first_property=True)

    assert stats.users_referred == _events(stats.id, subject_type="user") == 3
    assert stats.brokers_referred == _events(stats.id, subject_type="broker") == 2
    assert stats.broker_first_properties == _events(stats.id, is_first_property=True) == 1
    assert stats.period == ledger.period_key(stats.year, stats.month)

    daily = ReferralDailyStat.query.filter_by(stats_id=stats.id).one()
    assert daily.day == frozen_now.date()
    assert (daily.users_referred, daily.brokers_referred) == (3, 2)


def test_total_earnings_is_sum_of_parts(make_employee, frozen_now):
    emp = make_employee()
    amounts = [50, 50, 200, Decimal("500.25")]
    types = ["user", "user", "broker", "broker"]
    for i, (amount, kind) in enumerate(zip(amounts, types)):
        stats = ledger.add_referral(emp.id, "2024-01", i, kind, amount)
    assert stats.total_earnings == sum(Decimal(str(a)) for a in amounts)


def test_add_referral_rejects_bad_input(make_employee):
    emp = make_employee()
    with pytest.raises(ValidationError):
        ledger.add_referral(emp.id, "2024-01", 1, "admin", 10)
    with pytest.raises(ValidationError):
        ledger.add_referral(emp.id, "2024-01", 1, "user", 500, is_first_property=True)
    with pytest.raises(ValidationError):
        ledger.add_referral(emp.id, "Jan-2024", 1, "user", 50)
    assert ReferralStats.query.count() == 0


def test_failed_rollup_write_rolls_back_whole_booking(make_employee, frozen_now, monkeypatch):
    emp = make_employee()
    existing = ledger.add_referral(emp.id, "2024-01", 1, "user", 50)
    existing_id = existing.id

    def broken_rollup(stats_id, day, subject_type):
        # counter UPDATE and event INSERT reach the database first
        db.session.flush()
        raise SQLAlchemyError("disk full")

    monkeypatch.setattr(ledger, "_bump_daily", broken_rollup)
    frozen_feb = frozen_now.replace(month=2)

    with pytest.raises(InconsistentLedgerWriteError):
        ledger.add_referral(emp.id, "2024-01", 2, "user", 50)

    monkeypatch.setattr(ledger, "utcnow", lambda: frozen_feb)
    with pytest.raises(InconsistentLedgerWriteError):
        ledger.add_referral(emp.id, "2024-02", 3, "broker", 200)

    db.session.expire_all()
    stats = db.session.get(ReferralStats, existing_id)
    assert stats.users_referred == 1
    assert stats.brokers_referred == 0
    assert stats.total_earnings == Decimal("50")
    assert _events(existing_id) == 1
    assert ReferralStats.query.filter_by(employee_id=emp.id, period="2024-02").count() == 0
    assert ReferralEvent.query.filter_by(subject_id=3).count() == 0


def test_backfill_into_other_period_skips_daily_rollup(make_employee, frozen_now):
    emp = make_employee()
    stats = ledger.add_referral(emp.id, "2023-12", 1, "user", 50)

    assert stats.users_referred == 1
    assert _events(stats.id) == 1
    assert ReferralDailyStat.query.filter_by(stats_id=stats.id).count() == 0

    current = ledger.add_referral(emp.id, "2024-01", 2, "user", 50)
    daily = ReferralDailyStat.query.filter_by(stats_id=current.id).one()
    assert daily.day == frozen_now.date()


def test_thirty_users_calculate_earnings_3500(make_employee, frozen_now):
    emp = make_employee(userRegistration=50, monthlyBonus={"userTarget": {"achievement": 30, "bonus": 2000}})
    for i in range(30):
        ledger.add_referral(emp.id, "2024-01", i, "user", 50)

    assert ledger.calculate_earnings(emp.id, "2024-01") == Decimal("3500")
    # recompute is idempotent
    assert ledger.calculate_earnings(emp.id, "2024-01") == Decimal("3500")
    stats = ledger.get_period(emp.id, 2024, 1)
    assert stats.total_earnings == Decimal("1500")
    assert stats.bonus_earnings == Decimal("2000")


def test_calculate_earnings_not_found(make_employee):
    emp = make_employee()
    with pytest.raises(NotFoundError):
        ledger.calculate_earnings(emp.id, "2024-01")
    with pytest.raises(NotFoundError):
        ledger.calculate_earnings(9999, "2024-01")


def test_recalculate_period_uses_current_rates(make_employee, frozen_now):
    from realty_api.services.employee_registry import update_employee

    emp = make_employee()
    ledger.add_referral(emp.id, "2024-01", 1, "user", 50)
    update_employee(emp.id, {"commission_rates": {"userRegistration": 80}})
    assert ledger.recalculate_period(2024, 1) == 1
    assert ledger.get_period(emp.id, 2024, 1).total_earnings == Decimal("80")


def test_mark_paid_missing_period_creates_nothing(make_employee):
    emp = make_employee()
    with pytest.raises(NotFoundError):
        ledger.mark_paid(emp.id, "2024-03", 100, "UTR-1")
    assert ReferralStats.query.count() == 0


def test_mark_paid_sets_payment_fields(make_employee, frozen_now):
    emp = make_employee()
    ledger.add_referral(emp.id, "2024-01", 1, "user", 50)
    stats = ledger.mark_paid(emp.id, "2024-01", 50, "UTR-9")
    assert stats.is_paid is True
    assert stats.paid_amount == Decimal("50")
    assert stats.payment_reference == "UTR-9"
    assert stats.paid_date == frozen_now


def test_rates_snapshot_recorded_on_create(make_employee, frozen_now):
    emp = make_employee(userRegistration=60)
    stats = ledger.add_referral(emp.id, "2024-01", 1, "user", 60)
    assert stats.rates_snapshot["userRegistration"] == 60.0


def _seed_board(make_employee):
    """Four employees in 2024-01 with (users, brokers) as given."""
    shape = [(5, 0), (1, 2), (3, 0), (0, 3)]
    emps = []
    for users, brokers in shape:
        emp = make_employee()
        for i in range(users):
            ledger.add_referral(emp.id, "2024-01", i, "user", 50)
        for i in range(brokers):
            ledger.add_referral(emp.id, "2024-01", 100 + i, "broker", 200)
        emps.append(emp)
    # another period must not leak in
    ledger.add_referral(emps[2].id, "2024-02", 999, "broker", 200)
    return emps


def test_top_performers_by_total_referred(make_employee, frozen_now):
    a, b, c, d = _seed_board(make_employee)
    rows = ledger.get_top_performers(2024, 1, 5, "totalReferred")

    assert len(rows) == 4
    totals = [r["totalReferred"] for r in rows]
    assert totals == sorted(totals, reverse=True)
    # d, b and c tie on 3 referred and break by commission: 600, 450, 150
    assert [r["employeeId"] for r in rows] == [a.id, d.id, b.id, c.id]
    assert [r["rank"] for r in rows] == [1, 2, 3, 4]


def test_top_performers_default_sort_and_limit(make_employee, frozen_now):
    a, b, c, d = _seed_board(make_employee)
    rows = ledger.get_top_performers(2024, 1, 2)
    assert len(rows) == 2
    assert [r["employeeId"] for r in rows] == [d.id, b.id]
    assert rows[0]["totalCommission"] == 600.0


def test_top_performers_unknown_sort_key_falls_back(make_employee, frozen_now):
    _seed_board(make_employee)
    assert ledger.get_top_performers(2024, 1, 10, "bogus") == ledger.get_top_performers(2024, 1, 10)


def test_top_performers_stable_tiebreak(make_employee, frozen_now):
    first, second = make_employee(), make_employee()
    ledger.add_referral(second.id, "2024-01", 1, "user", 50)
    ledger.add_referral(first.id, "2024-01", 2, "user", 50)
    rows = ledger.get_top_performers(2024, 1, 10, "usersReferred")
    # equal on every key: earlier ledger row first
    assert [r["employeeId"] for r in rows] == [second.id, first.id]


def test_top_performers_skips_deleted_employee(make_employee, frozen_now):
    from realty_api.services.employee_registry import delete_employee

    emp = make_employee()
    ledger.add_referral(emp.id, "2024-01", 1, "user", 50)
    delete_employee(emp.id)
    assert ledger.get_top_performers(2024, 1) == []
    # the ledger row is orphaned, not removed
    assert db.session.query(ReferralStats).filter_by(employee_id=emp.id).count() == 1
