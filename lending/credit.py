"""Credit scoring and loan pricing rules.

All amounts are ``Decimal``; scores are plain ints.
"""
from __future__ import annotations

import random
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, List, Optional

from lending.models import CreditRating

BASE_SCORE = 500
MIN_SCORE = 300
MAX_SCORE = 850
DEFAULT_TERM_MONTHS = 12

CENTS = Decimal("0.01")

# (keywords, delta, label); first match wins
PURPOSE_RULES = [
    (("business", "trade"), 80, "Business purpose"),
    (("education", "school"), 60, "Education purpose"),
    (("emergency", "medical"), 40, "Emergency/Medical purpose"),
    (("wedding", "event"), -20, "Event purpose"),
]

RATING_THRESHOLDS = [
    (700, CreditRating.EXCELLENT),
    (650, CreditRating.VERY_GOOD),
    (600, CreditRating.GOOD),
    (550, CreditRating.FAIR),
    (500, CreditRating.POOR),
]


@dataclass
class CreditScore:
    score: int
    rating: str
    factors: List[str] = field(default_factory=list)


def _default_perturbation() -> int:
    return random.randint(-50, 50)


def rating_for_score(score: int) -> str:
    for threshold, rating in RATING_THRESHOLDS:
        if score >= threshold:
            return rating.value
    return CreditRating.NO_CREDIT.value


def calculate_credit_score(
    requested_amount,
    purpose: Optional[str] = None,
    term_months: Optional[int] = None,
    perturbation: Optional[Callable[[], int]] = None,
) -> CreditScore:
    """Rule-table credit score with a random perturbation in [-50, 50].

    Pass ``perturbation`` to pin the random term (e.g. ``lambda: 0``).
    """
    score = BASE_SCORE
    factors: List[str] = []

    amount = Decimal(str(requested_amount or 0))
    if amount <= 100_000:
        score += 100
        factors.append("Low loan amount (+100)")
    elif amount <= 500_000:
        score += 50
        factors.append("Moderate loan amount (+50)")
    elif amount <= 1_000_000:
        factors.append("High loan amount (0)")
    else:
        score -= 50
        factors.append("Very high loan amount (-50)")

    text = (purpose or "").lower()
    for keywords, delta, label in PURPOSE_RULES:
        if any(k in text for k in keywords):
            score += delta
            factors.append(f"{label} ({delta:+d})")
            break

    term = term_months or DEFAULT_TERM_MONTHS
    if term <= 6:
        score += 40
        factors.append("Short term <=6 months (+40)")
    elif term <= 12:
        score += 20
        factors.append("Medium term <=12 months (+20)")
    elif term <= 24:
        factors.append("Long term <=24 months (0)")
    else:
        score -= 30
        factors.append("Very long term >24 months (-30)")

    noise = int((perturbation or _default_perturbation)())
    score += noise
    factors.append(f"Random factor ({noise:+d})")

    score = max(MIN_SCORE, min(MAX_SCORE, score))
    return CreditScore(score=score, rating=rating_for_score(score), factors=factors)


def interest_rate_for_principal(principal) -> Decimal:
    """Annual interest rate (percent) offered on approval."""
    p = Decimal(str(principal))
    if p < 500_000:
        return Decimal("20")
    if p < 2_000_000:
        return Decimal("15")
    if p < 5_000_000:
        return Decimal("12")
    return Decimal("10")


def monthly_payment(principal, annual_rate, term_months: int) -> Decimal:
    """Amortized monthly installment; flat principal/term when the rate is zero."""
    p = Decimal(str(principal))
    n = int(term_months or DEFAULT_TERM_MONTHS)
    r = Decimal(str(annual_rate)) / Decimal(100) / Decimal(12)
    if r == 0:
        return (p / n).quantize(CENTS, rounding=ROUND_HALF_UP)
    growth = (1 + r) ** n
    return (p * r * growth / (growth - 1)).quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass
class FlatSchedule:
    total_interest: Decimal
    total_amount: Decimal
    monthly_payment: Decimal


def flat_schedule(principal, annual_rate, term_months: int) -> FlatSchedule:
    """Simple-interest schedule used for imported loans."""
    p = Decimal(str(principal))
    n = int(term_months or DEFAULT_TERM_MONTHS)
    interest = (p * Decimal(str(annual_rate)) / Decimal(100) * Decimal(n) / Decimal(12)).quantize(
        CENTS, rounding=ROUND_HALF_UP
    )
    total = p + interest
    return FlatSchedule(
        total_interest=interest,
        total_amount=total,
        monthly_payment=(total / n).quantize(CENTS, rounding=ROUND_HALF_UP),
    )


def estimate_monthly_income(requested_amount, rng: Optional[random.Random] = None) -> Decimal:
    """Guess monthly income as the requested amount over 2.5-4x, to the nearest 1000."""
    multiplier = (rng or random).uniform(2.5, 4.0)
    estimate = float(requested_amount or 0) / multiplier
    return Decimal(int(round(estimate / 1000.0)) * 1000)
