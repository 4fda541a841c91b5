"""Reconciliation and repair actions for data that drifted from the CSV exports.

These are one-shot operator actions. Unlike the importers they raise on a
missing input file: there is nothing sensible to repair without it.
"""
from __future__ import annotations

import logging
import random
import re
from collections import Counter
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from dateutil.relativedelta import relativedelta
from django.db import transaction
from django.db.models import F, Sum
from django.utils import timezone

from lending.credit import calculate_credit_score, estimate_monthly_income, flat_schedule
from lending.identifiers import BorrowerIdGenerator
from lending.models import (
    OPEN_LOAN_STATUSES,
    Borrower,
    Deposit,
    Loan,
    LoanApplication,
    Repayment,
    Savings,
    Withdrawal,
)
from scripts.etl.quickcredit.csvio import pick, read_rows
from scripts.etl.quickcredit.importers import import_repayments
from scripts.etl.quickcredit.normalize import is_valid_phone, normalize_phone, parse_amount, parse_date, split_name

if TYPE_CHECKING:  # pragma: no cover
    from scripts.etl.quickcredit.etl import Config

logger = logging.getLogger("quickcredit_etl")
ZERO = Decimal("0")
_BARE_PHONE = re.compile(r"^\d{9,10}$")


def _load(cfg: "Config", entity: str) -> List[Dict[str, str]]:
    path = cfg.path_for(entity)
    if not path.exists():
        raise FileNotFoundError(f"CSV not found: {path}")
    rows = read_rows(path)
    logger.info("Loaded %d %s rows from %s", len(rows), entity, path.name)
    return rows


def _total(values) -> Decimal:
    return sum(values, ZERO)


# ---------------------------
# Savings reconciliation
# ---------------------------

def _compare(rows, id_column: str, default_prefix: str, model, id_field: str) -> Dict[str, Any]:
    csv_ids = [pick(r, id_column, default=f"{default_prefix}{i + 1:04d}") for i, r in enumerate(rows)]
    db_ids = set(model.objects.values_list(id_field, flat=True))
    csv_total = _total(parse_amount(pick(r, "Amount")) for r in rows)
    db_total = model.objects.aggregate(total=Sum("amount"))["total"] or ZERO
    return {
        "csv_count": len(rows),
        "db_count": len(db_ids),
        "missing_in_db": sorted(set(csv_ids) - db_ids),
        "extra_in_db": sorted(db_ids - set(csv_ids)),
        "csv_total": str(csv_total),
        "db_total": str(db_total),
        "difference": str(csv_total - db_total),
    }


def compare_savings(cfg: "Config") -> Dict[str, Any]:
    """Compare deposits and withdrawals between the CSV exports and the database."""
    report = {
        "deposits": _compare(_load(cfg, "Deposits"), "Deposit ID", "DEP", Deposit, "deposit_id"),
        "withdrawals": _compare(_load(cfg, "Withdrawals"), "Withdrawal ID", "WDR", Withdrawal, "withdrawal_id"),
    }
    for kind, stats in report.items():
        prefix = "✅" if not stats["missing_in_db"] and not stats["extra_in_db"] else "⚠️"
        logger.info(
            "%s %s: csv=%d db=%d missing=%d extra=%d difference=%s",
            prefix,
            kind,
            stats["csv_count"],
            stats["db_count"],
            len(stats["missing_in_db"]),
            len(stats["extra_in_db"]),
            stats["difference"],
        )
    return report


def import_missing_deposits(cfg: "Config") -> Dict[str, int]:
    """Insert CSV deposits absent from the database, crediting each account."""
    rows = _load(cfg, "Deposits")
    existing = set(Deposit.objects.values_list("deposit_id", flat=True))
    missing = [r for r in rows if pick(r, "Deposit ID") and pick(r, "Deposit ID") not in existing]
    logger.info("Found %d deposits missing from the database", len(missing))

    stats = Counter(missing=len(missing))
    for row in missing:
        deposit_id = pick(row, "Deposit ID")
        account = Savings.objects.filter(savings_id=pick(row, "Account ID")).first()
        if account is None:
            logger.warning("⚠️ %s: account '%s' not found", deposit_id, pick(row, "Account ID"))
            stats["skipped"] += 1
            continue
        amount = parse_amount(pick(row, "Amount"))
        try:
            with transaction.atomic():
                Deposit.objects.create(
                    deposit_id=deposit_id,
                    account=account,
                    amount=amount,
                    deposit_date=parse_date(pick(row, "Date")) or timezone.localdate(),
                    method=pick(row, "Method", default="Cash"),
                )
                Savings.objects.filter(pk=account.pk).update(balance=F("balance") + amount)
        except Exception as e:
            logger.warning("❌ %s: %s", deposit_id, e)
            stats["failed"] += 1
            continue
        logger.info("✅ %s -> %s: %s", deposit_id, account.savings_id, amount)
        stats["imported"] += 1
    return {"missing": stats["missing"], "imported": stats["imported"], "skipped": stats["skipped"], "failed": stats["failed"]}


def recompute_savings_balances() -> Dict[str, int]:
    """Reset every balance to total deposits minus total withdrawals."""
    deposits = dict(Deposit.objects.values("account").annotate(total=Sum("amount")).values_list("account", "total"))
    withdrawals = dict(
        Withdrawal.objects.values("account").annotate(total=Sum("amount")).values_list("account", "total")
    )
    updated = 0
    accounts = list(Savings.objects.all())
    for account in accounts:
        balance = (deposits.get(account.pk) or ZERO) - (withdrawals.get(account.pk) or ZERO)
        if account.balance != balance:
            logger.info("%s: %s -> %s", account.savings_id, account.balance, balance)
            account.balance = balance
            account.save(update_fields=["balance", "updated_at"])
            updated += 1
    logger.info("✅ Recomputed %d savings balances (%d changed)", len(accounts), updated)
    return {"accounts": len(accounts), "updated": updated}


def update_opening_dates(cfg: "Config") -> Dict[str, int]:
    stats = Counter()
    for row in _load(cfg, "Savings"):
        account_id = pick(row, "Account ID", "Savings ID")
        opened = parse_date(pick(row, "Opening Date"))
        account = Savings.objects.filter(savings_id=account_id).first()
        if account is None or opened is None:
            stats["skipped"] += 1
            continue
        if account.opened_at == opened:
            stats["unchanged"] += 1
            continue
        account.opened_at = opened
        account.save(update_fields=["opened_at", "updated_at"])
        stats["updated"] += 1
    logger.info("✅ Opening dates: updated=%d unchanged=%d skipped=%d", stats["updated"], stats["unchanged"], stats["skipped"])
    return {"updated": stats["updated"], "unchanged": stats["unchanged"], "skipped": stats["skipped"]}


# ---------------------------
# Borrowers
# ---------------------------

def update_phone_numbers(cfg: "Config") -> Dict[str, int]:
    """Canonicalize borrower phones from the Savers export.

    For some accounts the Email column holds the phone number and the Phone
    Number column holds an address.
    """
    stats = Counter()
    for row in _load(cfg, "Savers"):
        account_id = pick(row, "Account ID")
        email_col = pick(row, "Email")
        phone_col = pick(row, "Phone Number")
        if _BARE_PHONE.match(email_col):
            raw_phone, email = email_col, ""
        else:
            raw_phone, email = phone_col, email_col

        account = Savings.objects.select_related("borrower").filter(savings_id=account_id).first()
        if account is None or account.borrower is None:
            logger.info("⚠️ %s: no borrower linked", account_id)
            stats["skipped"] += 1
            continue
        borrower = account.borrower
        phone = normalize_phone(raw_phone)
        if not is_valid_phone(phone):
            logger.info("%s: no valid phone number in CSV", account_id)
            stats["skipped"] += 1
            continue
        if phone == borrower.phone:
            stats["skipped"] += 1
            continue
        if Borrower.objects.filter(phone=phone).exclude(pk=borrower.pk).exists():
            logger.warning("⚠️ %s: %s already belongs to another borrower", account_id, phone)
            stats["failed"] += 1
            continue

        logger.info("✅ %s | %s: %s -> %s", account_id, borrower.full_name, borrower.phone, phone)
        borrower.phone = phone
        fields = ["phone", "updated_at"]
        if email:
            borrower.email = email
            fields.append("email")
        borrower.save(update_fields=fields)
        stats["updated"] += 1
    return {"updated": stats["updated"], "skipped": stats["skipped"], "failed": stats["failed"]}


def _derived_email(first: str, last: str) -> str:
    return f"{first.lower()}.{last.lower().replace(' ', '')}@quickcredit.com"


@transaction.atomic
def regenerate_borrower_ids(
    rng: Optional[random.Random] = None, perturbation: Optional[Callable[[], int]] = None
) -> Dict[str, int]:
    """Rebuild application borrowers' profiles and give them fresh initials-based ids."""
    applications = list(LoanApplication.objects.select_related("borrower").order_by("created_at", "id"))
    targets: Dict[int, LoanApplication] = {}
    for app in applications:
        targets.setdefault(app.borrower_id, app)

    untouched = Borrower.objects.exclude(pk__in=targets.keys()).values_list("borrower_id", flat=True)
    generator = BorrowerIdGenerator(untouched)
    # Park current ids so the new ones cannot collide with them mid-update.
    for pk in targets:
        Borrower.objects.filter(pk=pk).update(borrower_id=f"TMP-{pk}")

    updated = 0
    for app in targets.values():
        borrower = Borrower.objects.get(pk=app.borrower_id)
        if app.full_name:
            first, last = split_name(app.full_name)
        else:
            first, last = borrower.first_name or "Unknown", borrower.last_name or "User"
        first, last = first.upper(), last.upper()
        credit = calculate_credit_score(app.requested_amount, app.purpose, app.term_months, perturbation)

        borrower.first_name = first
        borrower.last_name = last
        borrower.email = app.email or _derived_email(first, last)
        borrower.district = (app.address.split(",")[0].strip() if app.address else "") or "Kampala"
        borrower.subcounty = borrower.subcounty or "Central"
        borrower.village = borrower.village or "Main"
        borrower.occupation = app.employment_status or "Self Employed"
        borrower.monthly_income = estimate_monthly_income(app.requested_amount, rng)
        borrower.credit_rating = credit.rating
        borrower.borrower_id = generator.generate(first, last)
        borrower.save()
        logger.info("%s %s -> %s (score %d, %s)", first, last, borrower.borrower_id, credit.score, credit.rating)
        updated += 1

    logger.info("✅ Regenerated %d borrowers from %d applications", updated, len(applications))
    return {"applications": len(applications), "updated": updated}


# ---------------------------
# Loans and repayments
# ---------------------------

def fix_loan_dates() -> Dict[str, int]:
    """Backfill missing disbursement and next-payment dates."""
    disbursed_fixed = 0
    disbursed_statuses = [Loan.Status.ACTIVE, Loan.Status.COMPLETED, Loan.Status.CLOSED, Loan.Status.DISBURSED]
    for loan in Loan.objects.filter(disbursed_at__isnull=True, status__in=disbursed_statuses):
        loan.disbursed_at = loan.created_at
        loan.save(update_fields=["disbursed_at", "updated_at"])
        disbursed_fixed += 1

    next_fixed = 0
    for loan in Loan.objects.filter(next_payment_date__isnull=True, status__in=OPEN_LOAN_STATUSES):
        base = loan.disbursed_at or loan.created_at
        loan.next_payment_date = timezone.localdate(base) + relativedelta(months=1)
        loan.save(update_fields=["next_payment_date", "updated_at"])
        next_fixed += 1

    logger.info("✅ Loan dates: disbursed_at=%d next_payment_date=%d", disbursed_fixed, next_fixed)
    return {"disbursed_at": disbursed_fixed, "next_payment_date": next_fixed}


def recompute_loan_balances() -> Dict[str, int]:
    """Outstanding = flat-schedule total minus everything repaid; COMPLETED at zero."""
    repaid = dict(Repayment.objects.values("loan").annotate(total=Sum("amount")).values_list("loan", "total"))
    stats = Counter()
    for loan in Loan.objects.all():
        schedule = flat_schedule(loan.principal, loan.interest_rate, loan.term_months)
        outstanding = max(ZERO, schedule.total_amount - (repaid.get(loan.pk) or ZERO))
        loan.total_interest = schedule.total_interest
        loan.total_amount = schedule.total_amount
        loan.monthly_payment = schedule.monthly_payment
        loan.outstanding_balance = outstanding
        if outstanding == 0:
            loan.status = Loan.Status.COMPLETED
            stats["completed"] += 1
        elif loan.status == Loan.Status.COMPLETED:
            loan.status = Loan.Status.ACTIVE
        loan.save()
        stats["loans"] += 1
    logger.info("✅ Recomputed %d loan balances (%d completed)", stats["loans"], stats["completed"])
    return {"loans": stats["loans"], "completed": stats["completed"]}


def reimport_repayments(cfg: "Config") -> Dict[str, Any]:
    """Replace every repayment with the CSV contents and recompute loan balances."""
    path = cfg.path_for("Repayments")
    if not path.exists():
        raise FileNotFoundError(f"CSV not found: {path}")
    deleted, _ = Repayment.objects.all().delete()
    logger.info("Deleted %d existing repayments", deleted)
    result = import_repayments(cfg)
    balances = recompute_loan_balances()
    return {"deleted": deleted, "import": result.as_dict(), "balances": balances}


def bulk_update_application_status(from_status: str, to_status: str) -> Dict[str, Any]:
    valid = LoanApplication.Status.values
    from_status, to_status = from_status.upper(), to_status.upper()
    if from_status not in valid or to_status not in valid:
        raise ValueError(f"Status must be one of {', '.join(valid)}")

    def distribution() -> Dict[str, int]:
        return dict(Counter(LoanApplication.objects.values_list("status", flat=True)))

    before = distribution()
    count = LoanApplication.objects.filter(status=from_status).update(status=to_status, updated_at=timezone.now())
    after = distribution()
    logger.info("✅ Moved %d applications %s -> %s", count, from_status, to_status)
    return {"updated": count, "before": before, "after": after}
