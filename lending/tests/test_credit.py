import random
from decimal import Decimal

from django.test import SimpleTestCase

from lending.credit import (
    calculate_credit_score,
    estimate_monthly_income,
    flat_schedule,
    interest_rate_for_principal,
    monthly_payment,
    rating_for_score,
)


class CreditScoreTests(SimpleTestCase):
    def test_small_short_business_loan(self):
        result = calculate_credit_score(50000, 'Business expansion', 6, perturbation=lambda: 0)
        self.assertEqual(result.score, 720)
        self.assertEqual(result.rating, 'Excellent')
        self.assertIn('Business purpose (+80)', result.factors)

    def test_large_long_event_loan(self):
        result = calculate_credit_score(2_000_000, 'Wedding', 36, perturbation=lambda: -50)
        self.assertEqual(result.score, 350)
        self.assertEqual(result.rating, 'NO_CREDIT')

    def test_first_matching_purpose_wins(self):
        result = calculate_credit_score(300000, 'school business', 12, perturbation=lambda: 0)
        # 500 + 50 + 80 + 20
        self.assertEqual(result.score, 650)

    def test_missing_term_counts_as_twelve_months(self):
        result = calculate_credit_score(800000, None, None, perturbation=lambda: 0)
        self.assertEqual(result.score, 520)

    def test_score_is_clamped(self):
        self.assertEqual(calculate_credit_score(1000, 'trade', 3, perturbation=lambda: 500).score, 850)
        self.assertEqual(calculate_credit_score(9_000_000, 'event', 48, perturbation=lambda: -500).score, 300)

    def test_default_perturbation_stays_in_range(self):
        for _ in range(50):
            score = calculate_credit_score(50000, 'business', 6).score
            self.assertTrue(670 <= score <= 770)

    def test_rating_boundaries(self):
        self.assertEqual(rating_for_score(700), 'Excellent')
        self.assertEqual(rating_for_score(699), 'Very Good')
        self.assertEqual(rating_for_score(650), 'Very Good')
        self.assertEqual(rating_for_score(600), 'Good')
        self.assertEqual(rating_for_score(550), 'Fair')
        self.assertEqual(rating_for_score(500), 'Poor')
        self.assertEqual(rating_for_score(499), 'NO_CREDIT')


class PricingTests(SimpleTestCase):
    def test_interest_rate_tiers(self):
        self.assertEqual(interest_rate_for_principal(499999), Decimal('20'))
        self.assertEqual(interest_rate_for_principal(500000), Decimal('15'))
        self.assertEqual(interest_rate_for_principal(1999999), Decimal('15'))
        self.assertEqual(interest_rate_for_principal(2000000), Decimal('12'))
        self.assertEqual(interest_rate_for_principal(5000000), Decimal('10'))

    def test_amortized_payment(self):
        self.assertEqual(monthly_payment(1_000_000, 12, 12), Decimal('88848.79'))

    def test_zero_rate_is_flat(self):
        self.assertEqual(monthly_payment(120000, 0, 12), Decimal('10000.00'))

    def test_flat_schedule(self):
        schedule = flat_schedule(1_000_000, 15, 12)
        self.assertEqual(schedule.total_interest, Decimal('150000.00'))
        self.assertEqual(schedule.total_amount, Decimal('1150000.00'))
        self.assertEqual(schedule.monthly_payment, Decimal('95833.33'))

    def test_income_estimate(self):
        rng = random.Random(7)
        for _ in range(20):
            income = estimate_monthly_income(1_000_000, rng)
            self.assertEqual(income % 1000, 0)
            self.assertTrue(Decimal('250000') <= income <= Decimal('400000'))
