from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


def _dec(val) -> Decimal:
    if isinstance(val, Decimal):
        return val
    return Decimal(str(val or 0))


@dataclass(frozen=True)
class BonusRule:
    achievement: int
    bonus: Decimal

    def __post_init__(self):
        object.__setattr__(self, "achievement", int(self.achievement or 0))
        object.__setattr__(self, "bonus", _dec(self.bonus))

    def met(self, count: int) -> bool:
        return count >= self.achievement


@dataclass(frozen=True)
class CommissionRates:
    user_registration: Decimal = Decimal("50")
    broker_registration: Decimal = Decimal("200")
    broker_first_property: Decimal = Decimal("500")
    user_target: BonusRule = field(default_factory=lambda: BonusRule(30, Decimal("2000")))
    broker_target: BonusRule = field(default_factory=lambda: BonusRule(10, Decimal("5000")))

    def __post_init__(self):
        for name in ("user_registration", "broker_registration", "broker_first_property"):
            object.__setattr__(self, name, _dec(getattr(self, name)))

    @classmethod
    def from_employee(cls, emp) -> "CommissionRates":
        return cls(
            user_registration=_dec(emp.rate_user_registration),
            broker_registration=_dec(emp.rate_broker_registration),
            broker_first_property=_dec(emp.rate_broker_first_property),
            user_target=BonusRule(emp.bonus_user_achievement, _dec(emp.bonus_user_amount)),
            broker_target=BonusRule(emp.bonus_broker_achievement, _dec(emp.bonus_broker_amount)),
        )

    def for_subject(self, subject_type: str) -> Decimal:
        """Flat registration commission for a referred subject."""
        return self.broker_registration if subject_type == "broker" else self.user_registration

    def as_dict(self) -> dict:
        return {
            "userRegistration": float(self.user_registration),
            "brokerRegistration": float(self.broker_registration),
            "brokerFirstProperty": float(self.broker_first_property),
            "monthlyBonus": {
                "userTarget": {"achievement": self.user_target.achievement, "bonus": float(self.user_target.bonus)},
                "brokerTarget": {"achievement": self.broker_target.achievement, "bonus": float(self.broker_target.bonus)},
            },
        }


@dataclass(frozen=True)
class LedgerCounts:
    users_referred: int = 0
    brokers_referred: int = 0
    broker_first_properties: int = 0

    @classmethod
    def of(cls, stats) -> "LedgerCounts":
        if stats is None:
            return cls()
        return cls(
            int(stats.users_referred or 0),
            int(stats.brokers_referred or 0),
            int(stats.broker_first_properties or 0),
        )


@dataclass(frozen=True)
class CommissionResult:
    base_commission: Decimal
    bonus_commission: Decimal
    breakdown: dict

    @property
    def total_commission(self) -> Decimal:
        return self.base_commission + self.bonus_commission

    def as_dict(self) -> dict:
        b = self.breakdown
        return {
            "baseCommission": float(self.base_commission),
            "bonusCommission": float(self.bonus_commission),
            "totalCommission": float(self.total_commission),
            "breakdown": {
                "usersReferred": b["users_referred"],
                "brokersReferred": b["brokers_referred"],
                "brokerFirstProperties": b["broker_first_properties"],
                "userTargetMet": b["user_target_met"],
                "brokerTargetMet": b["broker_target_met"],
                "commissionBreakdown": {
                    "userCommission": float(b["user_commission"]),
                    "brokerCommission": float(b["broker_commission"]),
                    "firstPropertyBonus": float(b["first_property_bonus"]),
                },
            },
        }


def compute_commission(counts: LedgerCounts, rates: CommissionRates) -> CommissionResult:
    """
    Translate ledger counters + rate configuration into commission.

    base  = users*userRegistration + brokers*brokerRegistration
            + firstProperties*brokerFirstProperty
    bonus = userTarget.bonus   if users   >= userTarget.achievement
          + brokerTarget.bonus if brokers >= brokerTarget.achievement

    Bonuses are all-or-nothing; nothing is prorated. No side effects.
    """
    user_commission = counts.users_referred * rates.user_registration
    broker_commission = counts.brokers_referred * rates.broker_registration
    first_property_bonus = counts.broker_first_properties * rates.broker_first_property
    base = user_commission + broker_commission + first_property_bonus

    user_target_met = rates.user_target.met(counts.users_referred)
    broker_target_met = rates.broker_target.met(counts.brokers_referred)

    bonus = Decimal("0")
    if user_target_met:
        bonus += rates.user_target.bonus
    if broker_target_met:
        bonus += rates.broker_target.bonus

    return CommissionResult(
        base_commission=base,
        bonus_commission=bonus,
        breakdown={
            "users_referred": counts.users_referred,
            "brokers_referred": counts.brokers_referred,
            "broker_first_properties": counts.broker_first_properties,
            "user_target_met": user_target_met,
            "broker_target_met": broker_target_met,
            "user_commission": user_commission,
            "broker_commission": broker_commission,
            "first_property_bonus": first_property_bonus,
        },
    )
