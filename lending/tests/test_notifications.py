from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core import mail
from django.test import SimpleTestCase, TestCase, override_settings
from django.utils import timezone

from lending import services
from lending.exceptions import NotFound
from lending.models import Borrower, Loan, Notification
from lending.notifications import NotificationService, render
from lending.tests.helpers import make_borrower, make_loan


@override_settings(COMPANY_NAME='QuickCredit', COMPANY_PHONE='0700000000')
class RenderTests(SimpleTestCase):
    def test_borrower_and_money_fields(self):
        borrower = Borrower(first_name='Jane', last_name='Doe')
        text = render('{company}: Hi {first_name}, pay UGX {amount} by {due_date}', borrower, {
            'amount': Decimal('95833.33'),
            'due_date': date(2024, 3, 15),
        })
        self.assertEqual(text, 'QuickCredit: Hi Jane, pay UGX 95,833 by Fri Mar 15 2024')

    def test_unknown_keys_render_empty(self):
        self.assertEqual(render('[{nothing}] {amount} {transaction_id}', None, {}), '[] 0 N/A')


@override_settings(COMPANY_NAME='QuickCredit')
class NotificationServiceTests(TestCase):
    def setUp(self):
        self.service = NotificationService()
        self.borrower = make_borrower(email='jane@example.com')

    def test_send_email(self):
        n = self.service.send(
            type=Notification.Type.LOAN_APPROVED,
            title='Loan Approved',
            message='Your loan was approved',
            channels=['email', 'in_app'],
            borrower=self.borrower,
            metadata={'amount': Decimal('1000000'), 'interest_rate': '15', 'term_months': 12},
        )
        self.assertEqual(n.status, Notification.Status.SENT)
        self.assertIsNotNone(n.sent_at)
        self.assertEqual(n.metadata['amount'], '1000000')
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].subject, 'Loan Application Approved - QuickCredit')
        self.assertEqual(mail.outbox[0].to, ['jane@example.com'])
        self.assertIn('UGX 1,000,000', mail.outbox[0].body)
        self.assertIn('12 months', mail.outbox[0].body)

    def test_unknown_channels_are_dropped(self):
        n = self.service.send(Notification.Type.SYSTEM_ALERT, 'Alert', 'Hello', channels=['pigeon', 'in_app'])
        self.assertEqual(n.channels, ['in_app'])

    def test_failing_channel_does_not_block_others(self):
        with patch.object(NotificationService, 'send_sms', side_effect=RuntimeError('gateway down')):
            with self.assertLogs('lending.notifications', level='ERROR'):
                n = self.service.send(
                    Notification.Type.PAYMENT_RECEIVED,
                    'Payment Received',
                    'Thanks',
                    channels=['sms', 'email'],
                    borrower=self.borrower,
                    metadata={'amount': 5000, 'balance': 10000},
                )
        n.refresh_from_db()
        self.assertEqual(n.status, Notification.Status.SENT)
        self.assertEqual(len(mail.outbox), 1)

    def test_payment_reminders(self):
        today = timezone.localdate()
        make_loan(self.borrower, loan_id='LN001', next_payment_date=today + timedelta(days=2))
        make_loan(self.borrower, loan_id='LN002', next_payment_date=today + timedelta(days=10))
        make_loan(self.borrower, loan_id='LN003', next_payment_date=today, status=Loan.Status.COMPLETED)

        self.assertEqual(self.service.send_payment_reminders(days=3), 1)
        n = Notification.objects.get()
        self.assertEqual(n.type, Notification.Type.PAYMENT_REMINDER)
        self.assertEqual(n.loan.loan_id, 'LN001')
        self.assertEqual(n.channels, ['whatsapp', 'sms'])

    def test_overdue_notices(self):
        today = timezone.localdate()
        make_loan(self.borrower, loan_id='LN001', next_payment_date=today - timedelta(days=5))
        make_loan(self.borrower, loan_id='LN002', next_payment_date=today)

        self.assertEqual(self.service.send_overdue_notices(), 1)
        n = Notification.objects.get()
        self.assertEqual(n.priority, 'high')
        self.assertEqual(n.metadata['days_past_due'], 5)

    def test_disbursed_loan_gets_reminder(self):
        today = timezone.localdate()
        make_loan(
            self.borrower, loan_id='LN001', status=Loan.Status.DISBURSED, next_payment_date=today + timedelta(days=2)
        )

        self.assertEqual(self.service.send_payment_reminders(days=3), 1)
        self.assertEqual(Notification.objects.get().loan.loan_id, 'LN001')

    def test_disbursed_loan_past_due_gets_notice(self):
        make_loan(self.borrower, loan_id='LN001', status=Loan.Status.APPROVED)
        loan = services.disburse_loan('LN001', when=timezone.now() - timedelta(days=60))
        self.assertEqual(loan.status, Loan.Status.DISBURSED)

        self.assertEqual(self.service.send_overdue_notices(), 1)
        n = Notification.objects.get()
        self.assertEqual(n.type, Notification.Type.OVERDUE_NOTICE)
        self.assertEqual(n.metadata['days_past_due'], (timezone.localdate() - loan.next_payment_date).days)


class InboxTests(TestCase):
    def setUp(self):
        User = get_user_model()
        self.alice = User.objects.create_user(username='alice', password='pw')
        self.bob = User.objects.create_user(username='bob', password='pw')
        self.service = NotificationService()
        self.note = self.service.send(Notification.Type.SYSTEM_ALERT, 'Alert', 'Backup done', user=self.alice)

    def test_mark_as_read(self):
        n = self.service.mark_as_read(self.note.pk, user=self.alice)
        self.assertTrue(n.is_read)
        self.assertIsNotNone(n.read_at)
        read_at = n.read_at
        self.assertEqual(self.service.mark_as_read(self.note.pk, user=self.alice).read_at, read_at)

    def test_other_users_cannot_read(self):
        with self.assertRaises(NotFound):
            self.service.mark_as_read(self.note.pk, user=self.bob)
        with self.assertRaises(NotFound):
            self.service.mark_as_read(999999)

    def test_list_for_user(self):
        Notification.objects.filter(pk=self.note.pk).update(created_at=timezone.now() - timedelta(hours=1))
        self.service.send(Notification.Type.SYSTEM_ALERT, 'Second', 'x', user=self.alice)
        self.assertEqual([n.title for n in self.service.list_for_user(self.alice)], ['Second', 'Alert'])
        self.assertEqual(self.service.list_for_user(self.bob), [])
        self.assertEqual(len(self.service.list_for_user(self.alice, limit=1)), 1)
