from datetime import date, datetime, timezone as dt_timezone
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase

from lending import services
from lending.exceptions import InsufficientFunds, InvalidAmount, InvalidState, NotFound
from lending.models import Loan, LoanApplication, Repayment, Savings
from lending.tests.helpers import make_application, make_borrower, make_loan, make_savings


class ApplicationReviewTests(TestCase):
    def setUp(self):
        self.officer = get_user_model().objects.create_user(username='officer', password='pw')
        self.borrower = make_borrower()
        self.app = make_application(self.borrower, purpose='Business')

    def test_approve_creates_loan(self):
        loan = services.approve_application('APP001', '1000000', reviewer=self.officer)

        self.assertEqual(loan.loan_id, 'LN001')
        self.assertEqual(loan.status, Loan.Status.APPROVED)
        self.assertEqual(loan.interest_rate, Decimal('15'))
        self.assertEqual(loan.borrower, self.borrower)
        self.assertEqual(loan.loan_officer, self.officer)
        self.assertEqual(loan.outstanding_balance, loan.monthly_payment * 12)
        self.assertEqual(loan.total_interest, loan.total_amount - Decimal('1000000'))
        self.assertIsNotNone(loan.next_payment_date)

        self.app.refresh_from_db()
        self.assertEqual(self.app.status, LoanApplication.Status.APPROVED)
        self.assertEqual(self.app.approved_amount, Decimal('1000000'))
        self.assertEqual(self.app.reviewed_by, self.officer)

    def test_approve_twice_is_invalid_state(self):
        services.approve_application('APP001', 500000)
        with self.assertRaises(InvalidState):
            services.approve_application('APP001', 500000)
        self.assertEqual(Loan.objects.count(), 1)

    def test_approve_requires_positive_amount(self):
        for bad in (0, -5, 'abc', None):
            with self.assertRaises(InvalidAmount):
                services.approve_application('APP001', bad)
        self.assertEqual(Loan.objects.count(), 0)
        self.app.refresh_from_db()
        self.assertEqual(self.app.status, LoanApplication.Status.PENDING)

    def test_approve_unknown_application(self):
        with self.assertRaises(NotFound):
            services.approve_application('APP999', 1000)

    def test_reject(self):
        app = services.reject_application('APP001', '  Insufficient income ', reviewer=self.officer)
        self.assertEqual(app.status, LoanApplication.Status.REJECTED)
        self.assertEqual(app.rejection_reason, 'Insufficient income')
        self.assertIsNotNone(app.reviewed_at)

    def test_reject_requires_reason(self):
        with self.assertRaises(InvalidState) as ctx:
            services.reject_application('APP001', '   ')
        self.assertIn('reason', ctx.exception.fields)

    def test_reject_after_approval(self):
        services.approve_application('APP001', 1000)
        with self.assertRaises(InvalidState):
            services.reject_application('APP001', 'late')


class DisbursementTests(TestCase):
    def setUp(self):
        self.borrower = make_borrower()
        make_application(self.borrower)
        self.loan = services.approve_application('APP001', 1000000)

    def test_disburse(self):
        when = datetime(2024, 1, 31, 9, 0, tzinfo=dt_timezone.utc)
        loan = services.disburse_loan(self.loan.loan_id, when=when)
        self.assertEqual(loan.status, Loan.Status.DISBURSED)
        self.assertEqual(loan.disbursed_amount, Decimal('1000000'))
        self.assertEqual(loan.next_payment_date, date(2024, 2, 29))

    def test_disburse_requires_approved(self):
        services.disburse_loan(self.loan.loan_id)
        with self.assertRaises(InvalidState):
            services.disburse_loan(self.loan.loan_id)

    def test_disburse_rejects_bad_amount(self):
        with self.assertRaises(InvalidAmount):
            services.disburse_loan(self.loan.loan_id, amount=0)


class RepaymentTests(TestCase):
    def setUp(self):
        self.borrower = make_borrower()
        self.loan = make_loan(
            self.borrower,
            total_interest=Decimal('120000'),
            total_amount=Decimal('300000'),
            outstanding_balance=Decimal('300000'),
            monthly_payment=Decimal('25000'),
            principal='180000',
            status=Loan.Status.DISBURSED,
            next_payment_date=date(2024, 2, 15),
        )

    def test_partial_then_full_repayment(self):
        first = services.record_repayment('LN001', '100000', payment_method='MOBILE_MONEY', transaction_id='MM1')
        self.assertEqual(first.receipt_number, 'REC001')
        self.assertEqual(first.interest_amount, Decimal('10000.00'))
        self.assertEqual(first.principal_amount, Decimal('90000.00'))

        self.loan.refresh_from_db()
        self.assertEqual(self.loan.status, Loan.Status.ACTIVE)
        self.assertEqual(self.loan.outstanding_balance, Decimal('200000'))
        self.assertEqual(self.loan.next_payment_date, date(2024, 3, 15))

        second = services.record_repayment('LN001', '250000')
        self.assertEqual(second.receipt_number, 'REC002')
        self.loan.refresh_from_db()
        self.assertEqual(self.loan.outstanding_balance, Decimal('0'))
        self.assertEqual(self.loan.status, Loan.Status.COMPLETED)
        self.assertIsNone(self.loan.next_payment_date)

    def test_small_payment_is_all_interest(self):
        rep = services.record_repayment('LN001', '4000')
        self.assertEqual(rep.interest_amount, Decimal('4000.00'))
        self.assertEqual(rep.principal_amount, Decimal('0'))

    def test_completed_loan_rejects_payments(self):
        services.record_repayment('LN001', '300000')
        with self.assertRaises(InvalidState):
            services.record_repayment('LN001', '1000')
        self.assertEqual(Repayment.objects.count(), 1)

    def test_invalid_amount(self):
        with self.assertRaises(InvalidAmount):
            services.record_repayment('LN001', 'NaN')
        with self.assertRaises(InvalidAmount):
            services.record_repayment('LN001', '-1')

    def test_unknown_loan(self):
        with self.assertRaises(NotFound):
            services.record_repayment('LN404', 1000)


class SavingsTests(TestCase):
    def setUp(self):
        self.account = make_savings(make_borrower(), balance='1000')

    def test_deposit_and_withdrawal(self):
        services.record_deposit('SAV001', '500', deposit_id='DEP1')
        services.record_withdrawal('SAV001', '1200', withdrawal_id='WDR1')
        self.account.refresh_from_db()
        self.assertEqual(self.account.balance, Decimal('300'))

    def test_withdrawal_over_balance(self):
        with self.assertRaises(InsufficientFunds):
            services.record_withdrawal('SAV001', '1000.01')
        self.account.refresh_from_db()
        self.assertEqual(self.account.balance, Decimal('1000'))

    def test_closed_account(self):
        Savings.objects.filter(pk=self.account.pk).update(status=Savings.Status.CLOSED)
        with self.assertRaises(InvalidState):
            services.record_deposit('SAV001', '10')

    def test_deposit_requires_positive_amount(self):
        with self.assertRaises(InvalidAmount):
            services.record_deposit('SAV001', '0')
