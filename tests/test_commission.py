from decimal import Decimal

from realty_api.services.commission import BonusRule, CommissionRates, LedgerCounts, compute_commission


def test_thirty_users_hits_user_bonus():
    rates = CommissionRates(user_registration=50, user_target=BonusRule(30, 2000))
    result = compute_commission(LedgerCounts(users_referred=30), rates)
    assert result.base_commission == Decimal("1500")
    assert result.bonus_commission == Decimal("2000")
    assert result.total_commission == Decimal("3500")
    assert result.breakdown["user_target_met"] is True
    assert result.breakdown["broker_target_met"] is False


def test_bonus_is_all_or_nothing():
    rates = CommissionRates()
    result = compute_commission(LedgerCounts(users_referred=29, brokers_referred=9), rates)
    assert result.bonus_commission == Decimal("0")
    assert result.base_commission == Decimal(29 * 50 + 9 * 200)


def test_broker_target_and_first_property():
    rates = CommissionRates()
    result = compute_commission(LedgerCounts(brokers_referred=10, broker_first_properties=2), rates)
    assert result.base_commission == Decimal(10 * 200 + 2 * 500)
    assert result.bonus_commission == Decimal("5000")
    d = result.as_dict()
    assert d["totalCommission"] == 8000.0
    assert d["breakdown"]["commissionBreakdown"]["firstPropertyBonus"] == 1000.0


def test_compute_is_pure_and_repeatable():
    counts = LedgerCounts(3, 2, 1)
    rates = CommissionRates(user_registration="75.50")
    first = compute_commission(counts, rates)
    second = compute_commission(counts, rates)
    assert first == second
    assert counts == LedgerCounts(3, 2, 1)
    assert first.base_commission == Decimal("75.50") * 3 + 400 + 500


def test_zero_counts_zero_commission():
    result = compute_commission(LedgerCounts(), CommissionRates())
    assert result.total_commission == 0


def test_for_subject_picks_flat_rate():
    rates = CommissionRates(user_registration=40, broker_registration=250)
    assert rates.for_subject("user") == Decimal("40")
    assert rates.for_subject("broker") == Decimal("250")


def test_ledger_counts_of_none():
    assert LedgerCounts.of(None) == LedgerCounts(0, 0, 0)
