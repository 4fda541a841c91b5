"""Borrower notifications over WhatsApp, SMS, email and in-app.

WhatsApp and SMS are logging stubs until a provider is wired in; email goes
through Django's mail framework (console backend unless configured).
"""
from __future__ import annotations

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from django.conf import settings
from django.core.mail import send_mail
from django.utils import timezone

from lending.exceptions import NotFound
from lending.models import OPEN_LOAN_STATUSES, Borrower, Loan, Notification

logger = logging.getLogger(__name__)

CHANNELS = ("whatsapp", "sms", "email", "in_app")


def _money(value: Any) -> str:
    try:
        return f"{Decimal(str(value or 0)):,.0f}"
    except ArithmeticError:
        return str(value)


def _day(value: Any) -> str:
    if isinstance(value, date):
        return value.strftime("%a %b %d %Y")
    return str(value or "")


SMS_TEMPLATES = {
    Notification.Type.PAYMENT_REMINDER: (
        "{company}: Hi {first_name}, your loan payment of UGX {amount} is due on {due_date}. "
        "Pay via Mobile Money or visit our office."
    ),
    Notification.Type.PAYMENT_RECEIVED: (
        "{company}: Payment received! UGX {amount} paid. Loan balance: UGX {balance}. Ref: {transaction_id}"
    ),
    Notification.Type.LOAN_APPROVED: (
        "{company}: Congratulations {first_name}! Your loan of UGX {amount} has been approved. "
        "Visit us to complete disbursement."
    ),
    Notification.Type.LOAN_DISBURSED: (
        "{company}: Your loan of UGX {amount} has been disbursed. "
        "Your first payment of UGX {first_payment} is due on {due_date}."
    ),
    Notification.Type.OVERDUE_NOTICE: (
        "{company}: OVERDUE! {first_name}, your payment of UGX {amount} is {days_past_due} days late. "
        "Pay now to avoid penalties. Call us: {company_phone}"
    ),
}

EMAIL_SUBJECTS = {
    Notification.Type.PAYMENT_REMINDER: "Loan Payment Reminder - {company}",
    Notification.Type.PAYMENT_RECEIVED: "Payment Received - {company}",
    Notification.Type.LOAN_APPROVED: "Loan Application Approved - {company}",
    Notification.Type.LOAN_DISBURSED: "Loan Disbursed - {company}",
    Notification.Type.OVERDUE_NOTICE: "Overdue Payment Notice - {company}",
}

EMAIL_BODIES = {
    Notification.Type.PAYMENT_REMINDER: """Dear {first_name} {last_name},

This is a friendly reminder that your loan payment is due.

Payment Details:
- Amount Due: UGX {amount}
- Due Date: {due_date}
- Loan ID: {loan_id}

You can pay via Mobile Money (MTN or Airtel), bank transfer, or at our office.

Thank you for choosing {company}.
""",
    Notification.Type.LOAN_APPROVED: """Dear {first_name} {last_name},

Congratulations! Your loan application has been approved.

Loan Details:
- Approved Amount: UGX {amount}
- Interest Rate: {interest_rate}%
- Term: {term_months} months

Please visit our office with the required documents to complete the disbursement.

Thank you for choosing {company}.
""",
}


class _Defaults(dict):
    def __missing__(self, key):
        return ""


def render(template: str, borrower: Optional[Borrower], metadata: Dict[str, Any]) -> str:
    """Fill a template from borrower fields, metadata and company settings; unknown keys render empty."""
    ctx = _Defaults(
        company=getattr(settings, "COMPANY_NAME", "QuickCredit"),
        company_phone=getattr(settings, "COMPANY_PHONE", "0700000000"),
        first_name=borrower.first_name if borrower else "",
        last_name=borrower.last_name if borrower else "",
        transaction_id="N/A",
    )
    for key, value in metadata.items():
        if key in ("amount", "balance", "first_payment"):
            ctx[key] = _money(value)
        elif key == "due_date":
            ctx[key] = _day(value)
        elif value not in (None, ""):
            ctx[key] = value
    ctx.setdefault("amount", _money(0))
    return template.format_map(ctx)


class NotificationService:
    """Persist a notification, then fan it out to each requested channel."""

    def send(
        self,
        type: str,
        title: str,
        message: str,
        channels: Iterable[str] = ("in_app",),
        priority: str = "medium",
        borrower: Optional[Borrower] = None,
        loan: Optional[Loan] = None,
        user=None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Notification:
        channels = [c for c in channels if c in CHANNELS]
        metadata = metadata or {}
        notification = Notification.objects.create(
            type=type,
            title=title,
            message=message,
            priority=priority,
            channels=channels,
            borrower=borrower,
            loan=loan,
            user=user,
            metadata={k: str(v) if isinstance(v, (Decimal, date)) else v for k, v in metadata.items()},
            status=Notification.Status.PENDING,
        )

        for channel in channels:
            sender = getattr(self, f"send_{channel}")
            try:
                sender(borrower, type, message, metadata)
            except Exception:
                # One failing channel must not block the others.
                logger.exception("%s notification failed (notification=%s, type=%s)", channel, notification.pk, type)

        notification.status = Notification.Status.SENT
        notification.sent_at = timezone.now()
        notification.save(update_fields=["status", "sent_at", "updated_at"])
        logger.info("Notification %s sent (type=%s, channels=%s)", notification.pk, type, ",".join(channels))
        return notification

    # Channels

    def send_whatsapp(self, borrower, type, message, metadata) -> None:
        if not borrower or not borrower.phone:
            return
        text = render(SMS_TEMPLATES[type], borrower, metadata) if type in SMS_TEMPLATES else message
        logger.info("WhatsApp message would be sent to %s: %s", borrower.phone, text)

    def send_sms(self, borrower, type, message, metadata) -> None:
        if not borrower or not borrower.phone:
            return
        text = render(SMS_TEMPLATES[type], borrower, metadata) if type in SMS_TEMPLATES else message
        logger.info("SMS would be sent to %s: %s", borrower.phone, text)

    def send_email(self, borrower, type, message, metadata) -> None:
        if not borrower or not borrower.email:
            return
        subject = render(EMAIL_SUBJECTS.get(type, "Notification from {company}"), borrower, metadata)
        body = render(EMAIL_BODIES[type], borrower, metadata) if type in EMAIL_BODIES else message
        send_mail(subject, body, settings.DEFAULT_FROM_EMAIL, [borrower.email], fail_silently=False)

    def send_in_app(self, borrower, type, message, metadata) -> None:
        # The Notification row is the in-app message.
        return None

    # Batch jobs

    def send_payment_reminders(self, days: int = 3) -> int:
        """Remind borrowers of disbursed or active loans due within ``days`` days."""
        today = timezone.localdate()
        loans = Loan.objects.select_related("borrower").filter(
            status__in=OPEN_LOAN_STATUSES,
            next_payment_date__gte=today,
            next_payment_date__lte=today + timedelta(days=days),
        )
        sent = 0
        for loan in loans:
            self.send(
                type=Notification.Type.PAYMENT_REMINDER,
                title="Payment Reminder",
                message="Your loan payment is due soon",
                priority="medium",
                channels=["whatsapp", "sms"],
                borrower=loan.borrower,
                loan=loan,
                metadata={
                    "amount": loan.next_payment_amount or loan.monthly_payment,
                    "due_date": loan.next_payment_date,
                    "loan_id": loan.loan_id,
                },
            )
            sent += 1
        logger.info("Payment reminders sent to %d borrowers", sent)
        return sent

    def send_overdue_notices(self) -> int:
        today = timezone.localdate()
        loans = Loan.objects.select_related("borrower").filter(
            status__in=OPEN_LOAN_STATUSES, next_payment_date__lt=today
        )
        sent = 0
        for loan in loans:
            self.send(
                type=Notification.Type.OVERDUE_NOTICE,
                title="Overdue Payment Notice",
                message="Your loan payment is overdue",
                priority="high",
                channels=["whatsapp", "sms"],
                borrower=loan.borrower,
                loan=loan,
                metadata={
                    "amount": loan.next_payment_amount or loan.monthly_payment,
                    "days_past_due": (today - loan.next_payment_date).days,
                    "loan_id": loan.loan_id,
                },
            )
            sent += 1
        logger.info("Overdue notices sent to %d borrowers", sent)
        return sent

    # Inbox

    def mark_as_read(self, notification_id: int, user=None) -> Notification:
        qs = Notification.objects.filter(pk=notification_id)
        if user is not None:
            qs = qs.filter(user=user)
        notification = qs.first()
        if notification is None:
            raise NotFound("Notification not found")
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = timezone.now()
            notification.save(update_fields=["is_read", "read_at", "updated_at"])
        return notification

    def list_for_user(self, user, limit: int = 20) -> List[Notification]:
        return list(Notification.objects.filter(user=user).order_by("-created_at")[:limit])
