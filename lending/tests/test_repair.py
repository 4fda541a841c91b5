from datetime import date
from decimal import Decimal
from pathlib import Path
from tempfile import TemporaryDirectory

from django.test import TestCase

from lending.models import Borrower, Deposit, Loan, LoanApplication, Repayment, Savings
from lending.tests.helpers import make_loan, write_csv, write_export_set
from scripts.etl.quickcredit import importers, repair
from scripts.etl.quickcredit.etl import Config


class RepairTestCase(TestCase):
    def setUp(self):
        self._tmp = TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.dir = Path(self._tmp.name)
        write_export_set(self.dir)
        self.cfg = Config(csv_dir=self.dir)
        importers.import_all(self.cfg)


class SavingsRepairTests(RepairTestCase):
    def test_compare_savings(self):
        report = repair.compare_savings(self.cfg)
        deposits = report['deposits']
        self.assertEqual((deposits['csv_count'], deposits['db_count']), (3, 2))
        self.assertEqual(deposits['missing_in_db'], ['DEP3'])
        self.assertEqual(deposits['extra_in_db'], [])
        self.assertEqual(Decimal(deposits['difference']), Decimal('100'))
        self.assertEqual(report['withdrawals']['missing_in_db'], [])

    def test_compare_savings_needs_files(self):
        self.cfg.path_for('Withdrawals').unlink()
        with self.assertRaises(FileNotFoundError):
            repair.compare_savings(self.cfg)

    def test_import_missing_deposits(self):
        self.assertEqual(repair.import_missing_deposits(self.cfg), {'missing': 1, 'imported': 0, 'skipped': 1, 'failed': 0})

        account = Savings.objects.create(savings_id='SAV404', balance=Decimal('10'))
        stats = repair.import_missing_deposits(self.cfg)
        self.assertEqual(stats['imported'], 1)
        account.refresh_from_db()
        self.assertEqual(account.balance, Decimal('110'))
        self.assertTrue(Deposit.objects.filter(deposit_id='DEP3').exists())

    def test_recompute_savings_balances(self):
        Savings.objects.filter(savings_id='SAV001').update(balance=Decimal('1'))
        self.assertEqual(repair.recompute_savings_balances(), {'accounts': 2, 'updated': 1})
        self.assertEqual(Savings.objects.get(savings_id='SAV001').balance, Decimal('50000'))

    def test_update_opening_dates(self):
        Savings.objects.filter(savings_id='SAV001').update(opened_at=None)
        stats = repair.update_opening_dates(self.cfg)
        self.assertEqual(stats, {'updated': 1, 'unchanged': 0, 'skipped': 1})
        self.assertEqual(Savings.objects.get(savings_id='SAV001').opened_at, date(2023, 2, 1))


class BorrowerRepairTests(RepairTestCase):
    def test_update_phone_numbers(self):
        write_csv(self.dir, 'Savers', ['Account ID', 'Phone Number', 'Email'], [
            ['SAV001', 'Plot 4, Gulu', '0772999888'],
            ['SAV002', '0772123456', 'sam2@example.com'],
            ['SAV404', '0772000000', ''],
        ])
        stats = repair.update_phone_numbers(self.cfg)
        self.assertEqual(stats, {'updated': 1, 'skipped': 1, 'failed': 1})
        sam = Borrower.objects.get(borrower_id='B002')
        self.assertEqual(sam.phone, '+256772999888')
        self.assertEqual(sam.email, '')

    def test_regenerate_borrower_ids(self):
        stats = repair.regenerate_borrower_ids(perturbation=lambda: 0)
        self.assertEqual(stats, {'applications': 2, 'updated': 1})

        sam = Borrower.objects.get(email='sam@example.com')
        self.assertEqual(sam.borrower_id, 'SO001')
        self.assertEqual((sam.first_name, sam.last_name), ('SAM', 'OKELLO'))
        self.assertEqual(sam.district, 'Gulu')
        self.assertEqual(sam.occupation, 'Trader')
        self.assertEqual(sam.credit_rating, 'Poor')
        self.assertEqual(sam.monthly_income % 1000, 0)
        self.assertEqual(
            sorted(Borrower.objects.values_list('borrower_id', flat=True)), ['B001', 'B003', 'SO001']
        )

    def test_regenerated_email_is_derived_when_blank(self):
        LoanApplication.objects.filter(application_id='APP001').update(email='', address='')
        repair.regenerate_borrower_ids(perturbation=lambda: 0)
        sam = Borrower.objects.get(borrower_id='SO001')
        self.assertEqual(sam.email, 'sam.okello@quickcredit.com')
        self.assertEqual(sam.district, 'Kampala')


class LoanRepairTests(RepairTestCase):
    def test_fix_loan_dates(self):
        # LN002 was imported without a due date
        loan = make_loan(Borrower.objects.get(borrower_id='B001'), 'LN010', next_payment_date=None)
        stats = repair.fix_loan_dates()
        self.assertEqual(stats, {'disbursed_at': 1, 'next_payment_date': 2})
        loan.refresh_from_db()
        self.assertEqual(loan.disbursed_at, loan.created_at)
        self.assertIsNotNone(loan.next_payment_date)

    def test_recompute_loan_balances(self):
        Loan.objects.filter(loan_id='LN002').update(status=Loan.Status.COMPLETED, outstanding_balance=0)
        self.assertEqual(repair.recompute_loan_balances(), {'loans': 2, 'completed': 0})
        self.assertEqual(Loan.objects.get(loan_id='LN001').outstanding_balance, Decimal('1050000'))
        ln2 = Loan.objects.get(loan_id='LN002')
        self.assertEqual(ln2.outstanding_balance, Decimal('575000'))
        self.assertEqual(ln2.status, Loan.Status.ACTIVE)

    def test_recompute_marks_paid_loans_completed(self):
        loan = Loan.objects.get(loan_id='LN002')
        Repayment.objects.create(
            receipt_number='RCP9', loan=loan, borrower=loan.borrower, amount=Decimal('600000'), paid_at=loan.created_at
        )
        self.assertEqual(repair.recompute_loan_balances()['completed'], 1)
        self.assertEqual(Loan.objects.get(loan_id='LN002').status, Loan.Status.COMPLETED)

    def test_reimport_repayments(self):
        loan = Loan.objects.get(loan_id='LN001')
        Repayment.objects.create(
            receipt_number='MANUAL', loan=loan, borrower=loan.borrower, amount=Decimal('1'), paid_at=loan.created_at
        )
        result = repair.reimport_repayments(self.cfg)
        self.assertEqual(result['deleted'], 2)
        self.assertEqual(result['import']['imported'], 1)
        self.assertEqual(list(Repayment.objects.values_list('receipt_number', flat=True)), ['RCP1'])
        self.assertEqual(Loan.objects.get(loan_id='LN001').outstanding_balance, Decimal('1050000'))

    def test_reimport_repayments_without_file_keeps_data(self):
        self.cfg.path_for('Repayments').unlink()
        with self.assertRaises(FileNotFoundError):
            repair.reimport_repayments(self.cfg)
        self.assertEqual(Repayment.objects.count(), 1)


class BulkStatusTests(RepairTestCase):
    def test_bulk_update(self):
        result = repair.bulk_update_application_status('pending', 'REJECTED')
        self.assertEqual(result['updated'], 1)
        self.assertEqual(result['before'], {'APPROVED': 1, 'PENDING': 1})
        self.assertEqual(result['after'], {'APPROVED': 1, 'REJECTED': 1})

    def test_invalid_status(self):
        with self.assertRaises(ValueError):
            repair.bulk_update_application_status('PENDING', 'ARCHIVED')
