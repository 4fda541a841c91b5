"""Lending operations that move money or change loan/application state.

Every operation runs in a single ``transaction.atomic`` block and raises a
``LendingError`` subclass when the input or the current state is invalid.
"""
from __future__ import annotations

import logging
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from typing import Optional

from dateutil.relativedelta import relativedelta
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from lending.credit import interest_rate_for_principal, monthly_payment
from lending.exceptions import InsufficientFunds, InvalidAmount, InvalidState, NotFound
from lending.identifiers import generate_loan_id, generate_receipt_number
from lending.models import Deposit, Loan, LoanApplication, Repayment, Savings, Withdrawal

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
FIRST_PAYMENT_DAYS = 30
REPAYABLE_STATUSES = (Loan.Status.APPROVED, Loan.Status.DISBURSED, Loan.Status.ACTIVE)


def _positive(amount, label: str = "amount") -> Decimal:
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmount(f"Invalid {label}", fields={label: "Must be a number"})
    if not value.is_finite() or value <= 0:
        raise InvalidAmount(f"Valid {label} is required", fields={label: "Must be greater than zero"})
    return value


def _get(model, **lookup):
    obj = model.objects.select_for_update().filter(**lookup).first()
    if obj is None:
        raise NotFound(f"{model.__name__} not found")
    return obj


@transaction.atomic
def approve_application(application_id: str, approved_amount, reviewer=None, notes: str = "") -> Loan:
    """Approve a pending application and create its loan with an amortized schedule."""
    app = _get(LoanApplication, application_id=application_id)
    if app.status != LoanApplication.Status.PENDING:
        raise InvalidState(f"Application is already {app.status.lower()}")
    principal = _positive(approved_amount, "approved_amount")

    rate = interest_rate_for_principal(principal)
    installment = monthly_payment(principal, rate, app.term_months)
    total = installment * app.term_months
    now = timezone.now()

    app.status = LoanApplication.Status.APPROVED
    app.approved_amount = principal
    app.reviewed_at = now
    app.reviewed_by = reviewer
    app.save(update_fields=["status", "approved_amount", "reviewed_at", "reviewed_by", "updated_at"])

    loan = Loan.objects.create(
        loan_id=generate_loan_id(),
        application=app,
        borrower=app.borrower,
        loan_officer=reviewer,
        principal=principal,
        interest_rate=rate,
        term_months=app.term_months,
        total_interest=total - principal,
        total_amount=total,
        monthly_payment=installment,
        status=Loan.Status.APPROVED,
        purpose=app.purpose,
        outstanding_balance=total,
        next_payment_date=(now + timedelta(days=FIRST_PAYMENT_DAYS)).date(),
        next_payment_amount=installment,
    )
    logger.info("Application %s approved as loan %s (%s @ %s%%)", app.application_id, loan.loan_id, principal, rate)
    if notes:
        logger.info("Review notes for %s: %s", app.application_id, notes)
    return loan


@transaction.atomic
def reject_application(application_id: str, reason: str, reviewer=None) -> LoanApplication:
    app = _get(LoanApplication, application_id=application_id)
    if not (reason or "").strip():
        raise InvalidState("Rejection reason is required", fields={"reason": "This field is required"})
    if app.status != LoanApplication.Status.PENDING:
        raise InvalidState(f"Application is already {app.status.lower()}")
    app.status = LoanApplication.Status.REJECTED
    app.rejection_reason = reason.strip()
    app.reviewed_at = timezone.now()
    app.reviewed_by = reviewer
    app.save(update_fields=["status", "rejection_reason", "reviewed_at", "reviewed_by", "updated_at"])
    logger.info("Application %s rejected", app.application_id)
    return app


@transaction.atomic
def disburse_loan(loan_id: str, amount=None, when=None) -> Loan:
    """Mark an approved loan as disbursed; the first installment falls due a month later."""
    loan = _get(Loan, loan_id=loan_id)
    if loan.status != Loan.Status.APPROVED:
        raise InvalidState(f"Loan {loan.loan_id} is {loan.status}, expected APPROVED")
    disbursed = _positive(amount, "amount") if amount is not None else loan.principal
    when = when or timezone.now()
    loan.status = Loan.Status.DISBURSED
    loan.disbursed_at = when
    loan.disbursed_amount = disbursed
    loan.next_payment_date = (when + relativedelta(months=1)).date()
    loan.next_payment_amount = loan.monthly_payment
    loan.save()
    logger.info("Loan %s disbursed: %s", loan.loan_id, disbursed)
    return loan


@transaction.atomic
def record_repayment(
    loan_id: str,
    amount,
    payment_method: str = "CASH",
    paid_at=None,
    transaction_id: str = "",
    notes: str = "",
) -> Repayment:
    """Apply a payment to a loan.

    The outstanding balance is floored at zero; a loan reaching zero becomes
    COMPLETED, otherwise a disbursed loan becomes ACTIVE.
    """
    loan = _get(Loan, loan_id=loan_id)
    if loan.status not in REPAYABLE_STATUSES:
        raise InvalidState(f"Loan {loan.loan_id} is {loan.status} and cannot accept repayments")
    value = _positive(amount)
    paid_at = paid_at or timezone.now()

    interest_part = min(value, loan.total_interest / loan.term_months if loan.term_months else ZERO)
    interest_part = interest_part.quantize(Decimal("0.01"))
    repayment = Repayment.objects.create(
        receipt_number=generate_receipt_number(),
        loan=loan,
        borrower=loan.borrower,
        amount=value,
        principal_amount=value - interest_part,
        interest_amount=interest_part,
        payment_method=payment_method or "CASH",
        transaction_id=transaction_id or "",
        paid_at=paid_at,
        month=paid_at.strftime("%B %Y"),
        notes=notes,
    )

    loan.outstanding_balance = max(ZERO, loan.outstanding_balance - value)
    if loan.outstanding_balance == 0:
        loan.status = Loan.Status.COMPLETED
        loan.next_payment_date = None
        loan.next_payment_amount = None
    else:
        loan.status = Loan.Status.ACTIVE
        base = loan.next_payment_date or paid_at.date()
        loan.next_payment_date = base + relativedelta(months=1)
        loan.next_payment_amount = min(loan.monthly_payment, loan.outstanding_balance)
    loan.save()
    logger.info(
        "Repayment %s on %s: %s (outstanding %s)",
        repayment.receipt_number,
        loan.loan_id,
        value,
        loan.outstanding_balance,
    )
    return repayment


@transaction.atomic
def record_deposit(
    savings_id: str, amount, deposit_date: Optional[date] = None, method: str = "Cash", deposit_id: str = ""
) -> Deposit:
    account = _get(Savings, savings_id=savings_id)
    if account.status == Savings.Status.CLOSED:
        raise InvalidState(f"Savings account {savings_id} is closed")
    value = _positive(amount)
    deposit = Deposit.objects.create(
        deposit_id=deposit_id or f"DEP{int(timezone.now().timestamp() * 1000)}",
        account=account,
        amount=value,
        deposit_date=deposit_date or timezone.localdate(),
        method=method or "Cash",
    )
    Savings.objects.filter(pk=account.pk).update(balance=F("balance") + value)
    logger.info("Deposit %s to %s: %s", deposit.deposit_id, savings_id, value)
    return deposit


@transaction.atomic
def record_withdrawal(
    savings_id: str, amount, withdrawal_date: Optional[date] = None, method: str = "CASH", withdrawal_id: str = ""
) -> Withdrawal:
    account = _get(Savings, savings_id=savings_id)
    if account.status == Savings.Status.CLOSED:
        raise InvalidState(f"Savings account {savings_id} is closed")
    value = _positive(amount)
    if value > account.balance:
        raise InsufficientFunds(
            f"Insufficient balance: {account.balance} available, {value} requested",
            fields={"amount": "Exceeds available balance"},
        )
    withdrawal = Withdrawal.objects.create(
        withdrawal_id=withdrawal_id or f"WDR{int(timezone.now().timestamp() * 1000)}",
        account=account,
        amount=value,
        withdrawal_date=withdrawal_date or timezone.localdate(),
        method=method or "CASH",
    )
    Savings.objects.filter(pk=account.pk).update(balance=F("balance") - value)
    logger.info("Withdrawal %s from %s: %s", withdrawal.withdrawal_id, savings_id, value)
    return withdrawal
