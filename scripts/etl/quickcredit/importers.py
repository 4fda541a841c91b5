"""Entity importers: QuickCredit CSV exports -> lending models.

Each importer reads one file, upserts every row by its business id inside
its own savepoint, and returns an ``ImportResult``. A bad row is logged and
counted; it never stops the file, and a bad file never stops the run.
Foreign keys that cannot be resolved fall back the same way the legacy
spreadsheets were reconciled: loans to the first borrower, savings and
applications to ``borrowers[index % n]``.
"""
from __future__ import annotations

import csv
import logging
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone

from lending.credit import flat_schedule
from lending.models import (
    Borrower,
    CreditRating,
    Deposit,
    Expense,
    ImportRun,
    Loan,
    LoanApplication,
    Notification,
    Repayment,
    Savings,
    Withdrawal,
)
from scripts.etl.quickcredit.csvio import pick, read_rows
from scripts.etl.quickcredit.normalize import (
    fabricate_phone,
    is_valid_phone,
    normalize_phone,
    parse_amount,
    parse_date,
    split_name,
)

if TYPE_CHECKING:  # pragma: no cover
    from scripts.etl.quickcredit.etl import Config

logger = logging.getLogger("quickcredit_etl")
IMPORTED = "imported"
SKIPPED = "skipped"

REPAYMENT_PRINCIPAL_SHARE = Decimal("0.70")


@dataclass
class ImportResult:
    table: str
    success: bool = True
    imported: int = 0
    skipped: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ---------------------------
# Helpers
# ---------------------------

def get_system_user(username: str = "system"):
    """User that imported rows are attributed to; created on first use."""
    User = get_user_model()
    user, created = User.objects.get_or_create(
        username=username,
        defaults={
            "email": "system@quickcredit.com",
            "first_name": "System",
            "last_name": "Migration",
            "is_staff": True,
        },
    )
    if created:
        user.set_unusable_password()
        user.save(update_fields=["password"])
        logger.info("Created system user '%s'", username)
    return user


def as_datetime(value: Optional[date]) -> Optional[datetime]:
    if value is None:
        return None
    dt = datetime.combine(value, time.min)
    return timezone.make_aware(dt) if timezone.is_naive(dt) else dt


def as_int(value: str, default: int) -> int:
    n = int(parse_amount(value))
    return n if n > 0 else default


def _choice(value: str, choices, default: str) -> str:
    v = (value or "").strip().upper()
    return v if v in choices.values else default


def _run(cfg: "Config", table: str, entity: str, handle_row: Callable[[int, Dict[str, str]], str]) -> ImportResult:
    result = ImportResult(table=table)
    path = cfg.path_for(entity)
    logger.info("Importing %s from %s", table, path.name)
    if not path.exists():
        result.success = False
        result.errors.append(f"File not found: {path}")
        logger.error("❌ %s: file not found: %s", table, path)
        return result
    try:
        rows = read_rows(path)
    except (OSError, UnicodeDecodeError, csv.Error) as e:
        result.success = False
        result.errors.append(f"Could not read {path.name}: {e}")
        logger.error("❌ %s: could not read %s: %s", table, path, e)
        return result

    for index, row in enumerate(rows):
        try:
            with transaction.atomic():
                outcome = handle_row(index, row)
        except Exception as e:
            result.failed += 1
            result.errors.append(f"row {index + 2}: {e}")
            logger.warning("❌ %s row %d failed: %s", table, index + 2, e)
            continue
        if outcome == SKIPPED:
            result.skipped += 1
        else:
            result.imported += 1

    logger.info(
        "✅ %s: imported=%d skipped=%d failed=%d", table, result.imported, result.skipped, result.failed
    )
    return result


def _skip_all(cfg: "Config", table: str, entity: str, reason: str) -> ImportResult:
    logger.warning("⚠️ %s", reason)
    return _run(cfg, table, entity, lambda index, row: SKIPPED)


# ---------------------------
# Importers
# ---------------------------

def import_borrowers(cfg: "Config") -> ImportResult:
    system_user = get_system_user(cfg.system_username)
    used_phones = set(Borrower.objects.values_list("phone", flat=True))
    used_nids = set(Borrower.objects.exclude(national_id=None).values_list("national_id", flat=True))

    def handle(index: int, row: Dict[str, str]) -> str:
        borrower_id = pick(row, "Borrower ID", "ID", default=f"BORR{index + 1:04d}")
        existing = Borrower.objects.filter(borrower_id=borrower_id).first()
        first, last = split_name(pick(row, "Name", "Full Name", default=f"Borrower {index + 1}"))

        phone = normalize_phone(pick(row, "Phone Number", "Phone"))
        if phone and not is_valid_phone(phone):
            logger.warning("⚠️ Invalid phone %s for %s; fabricating one", phone, borrower_id)
            phone = None
        if phone and phone in used_phones and not (existing and existing.phone == phone):
            logger.warning("⚠️ Duplicate phone %s for %s; fabricating one", phone, borrower_id)
            phone = None
        if not phone:
            phone = existing.phone if existing else fabricate_phone(used_phones)
        used_phones.add(phone)

        national_id = pick(row, "National ID / Passport", "National ID", "NIN") or None
        if national_id and national_id in used_nids and not (existing and existing.national_id == national_id):
            logger.warning("⚠️ Duplicate national ID %s for %s; dropped", national_id, borrower_id)
            national_id = None
        if national_id:
            used_nids.add(national_id)

        income = parse_amount(pick(row, "Monthly Income"))
        rating = pick(row, "Credit Rating")
        Borrower.objects.update_or_create(
            borrower_id=borrower_id,
            defaults={
                "first_name": first,
                "last_name": last,
                "phone": phone,
                "email": pick(row, "Email Address", "Email"),
                "gender": pick(row, "Gender"),
                "date_of_birth": parse_date(pick(row, "Date of Birth", "DOB")),
                "national_id": national_id,
                "district": pick(row, "District"),
                "subcounty": pick(row, "Subcounty", "Sub County"),
                "village": pick(row, "Village", "Residential Address"),
                "occupation": pick(row, "Occupation"),
                "monthly_income": income or None,
                "credit_rating": rating if rating in CreditRating.values else CreditRating.NO_CREDIT,
                "created_by": system_user,
            },
        )
        return IMPORTED

    return _run(cfg, "borrowers", "Borrowers", handle)


def import_loans(cfg: "Config") -> ImportResult:
    borrowers = list(Borrower.objects.order_by("id"))
    if not borrowers:
        return _skip_all(cfg, "loans", "Loans", "No borrowers found, skipping loans import")
    system_user = get_system_user(cfg.system_username)
    by_name = {b.full_name.lower(): b for b in borrowers}

    def handle(index: int, row: Dict[str, str]) -> str:
        borrower = by_name.get(pick(row, "Customer Name").lower()) or borrowers[0]
        principal = parse_amount(pick(row, "Amount"))
        rate = parse_amount(pick(row, "Interest Rate")) or Decimal("15")
        term = as_int(pick(row, "Term"), 12)
        schedule = flat_schedule(principal, rate, term)
        originated = parse_date(pick(row, "Origination Date")) or timezone.localdate()

        Loan.objects.update_or_create(
            loan_id=pick(row, "Loan ID", default=f"LOAN{index + 1:04d}"),
            defaults={
                "borrower": borrower,
                "loan_officer": system_user,
                "principal": principal,
                "interest_rate": rate,
                "term_months": term,
                "total_interest": schedule.total_interest,
                "total_amount": schedule.total_amount,
                "monthly_payment": schedule.monthly_payment,
                "status": _choice(pick(row, "Status"), Loan.Status, Loan.Status.ACTIVE),
                "purpose": pick(row, "Purpose", default="General"),
                "disbursed_at": as_datetime(originated),
                "disbursed_amount": principal,
                "outstanding_balance": parse_amount(pick(row, "Outstanding Balance")) or principal,
                "next_payment_date": parse_date(pick(row, "Due Date")),
                "next_payment_amount": schedule.monthly_payment,
            },
        )
        return IMPORTED

    return _run(cfg, "loans", "Loans", handle)


def _repayment_defaults(loan: Loan, row: Dict[str, str]) -> Dict[str, Any]:
    amount = parse_amount(pick(row, "Amount"))
    principal_part = (amount * REPAYMENT_PRINCIPAL_SHARE).quantize(Decimal("0.01"))
    paid = parse_date(pick(row, "Payment Date")) or timezone.localdate()
    return {
        "loan": loan,
        "borrower": loan.borrower,
        "amount": amount,
        "principal_amount": principal_part,
        "interest_amount": amount - principal_part,
        "payment_method": pick(row, "Payment Method", default="CASH"),
        "transaction_id": pick(row, "Transaction ID"),
        "status": Repayment.Status.COMPLETED,
        "paid_at": as_datetime(paid),
        "month": pick(row, "Month"),
    }


def import_repayments(cfg: "Config") -> ImportResult:
    loans = {loan.loan_id: loan for loan in Loan.objects.select_related("borrower")}

    def handle(index: int, row: Dict[str, str]) -> str:
        loan_id = pick(row, "Loan ID")
        loan = loans.get(loan_id)
        if loan is None:
            logger.warning("⚠️ Repayment row %d: loan '%s' not found", index + 2, loan_id)
            return SKIPPED
        Repayment.objects.update_or_create(
            receipt_number=pick(row, "Receipt Number", "Repayment ID", default=f"RCP{index + 1:06d}"),
            defaults=_repayment_defaults(loan, row),
        )
        return IMPORTED

    return _run(cfg, "repayments", "Repayments", handle)


def import_savings(cfg: "Config") -> ImportResult:
    borrowers = list(Borrower.objects.order_by("id"))
    if not borrowers:
        return _skip_all(cfg, "savings", "Savings", "No borrowers found, skipping savings import")
    by_business_id = {b.borrower_id: b for b in borrowers}

    def handle(index: int, row: Dict[str, str]) -> str:
        borrower = by_business_id.get(pick(row, "Borrower ID", "BorrowerID")) or borrowers[index % len(borrowers)]
        Savings.objects.update_or_create(
            savings_id=pick(row, "Savings ID", "Account ID", "ID", default=f"SAV{index + 1:04d}"),
            defaults={
                "borrower": borrower,
                "balance": parse_amount(pick(row, "Balance")),
                "interest_rate": parse_amount(pick(row, "Interest Rate")) or Decimal("5"),
                "status": Savings.Status.ACTIVE,
                "opened_at": parse_date(pick(row, "Opening Date")),
            },
        )
        return IMPORTED

    return _run(cfg, "savings", "Savings", handle)


def import_deposits(cfg: "Config") -> ImportResult:
    accounts = {s.savings_id: s for s in Savings.objects.all()}

    def handle(index: int, row: Dict[str, str]) -> str:
        account_id = pick(row, "Account ID")
        account = accounts.get(account_id)
        if account is None:
            logger.warning("⚠️ Deposit row %d: account '%s' not found", index + 2, account_id)
            return SKIPPED
        Deposit.objects.update_or_create(
            deposit_id=pick(row, "Deposit ID", default=f"DEP{index + 1:04d}"),
            defaults={
                "account": account,
                "amount": parse_amount(pick(row, "Amount")),
                "deposit_date": parse_date(pick(row, "Date")) or timezone.localdate(),
                "method": pick(row, "Method", default="Cash"),
            },
        )
        return IMPORTED

    return _run(cfg, "deposits", "Deposits", handle)


def import_withdrawals(cfg: "Config") -> ImportResult:
    accounts = {s.savings_id: s for s in Savings.objects.all()}

    def handle(index: int, row: Dict[str, str]) -> str:
        account_id = pick(row, "Account ID")
        account = accounts.get(account_id)
        if account is None:
            logger.warning("⚠️ Withdrawal row %d: account '%s' not found", index + 2, account_id)
            return SKIPPED
        Withdrawal.objects.update_or_create(
            withdrawal_id=pick(row, "Withdrawal ID", default=f"WDR{index + 1:04d}"),
            defaults={
                "account": account,
                "amount": parse_amount(pick(row, "Amount")),
                "withdrawal_date": parse_date(pick(row, "Date")) or timezone.localdate(),
                "method": pick(row, "Method", default="CASH"),
            },
        )
        return IMPORTED

    return _run(cfg, "withdrawals", "Withdrawals", handle)


def import_expenses(cfg: "Config") -> ImportResult:
    def handle(index: int, row: Dict[str, str]) -> str:
        Expense.objects.update_or_create(
            expense_id=pick(row, "Expense ID", default=f"EXP{index + 1:04d}"),
            defaults={
                "description": pick(row, "Description", default="General Expense"),
                "amount": parse_amount(pick(row, "Amount")),
                "category": pick(row, "Category", default="OPERATIONAL"),
                "expense_date": parse_date(pick(row, "Date")) or timezone.localdate(),
            },
        )
        return IMPORTED

    return _run(cfg, "expenses", "Expenses", handle)


def import_applications(cfg: "Config") -> ImportResult:
    borrowers = list(Borrower.objects.order_by("id"))
    if not borrowers:
        return _skip_all(cfg, "applications", "Applications", "No borrowers found, skipping applications import")
    system_user = get_system_user(cfg.system_username)
    by_name = {b.full_name.lower(): b for b in borrowers}

    def handle(index: int, row: Dict[str, str]) -> str:
        full_name = pick(row, "Full Name", "Name")
        borrower = by_name.get(full_name.lower()) or borrowers[index % len(borrowers)]
        status = _choice(pick(row, "Status"), LoanApplication.Status, LoanApplication.Status.PENDING)
        reviewed = status != LoanApplication.Status.PENDING
        submitted = as_datetime(parse_date(pick(row, "Application Date"))) or timezone.now()

        LoanApplication.objects.update_or_create(
            application_id=pick(row, "Application ID", "ID", default=f"APP{index + 1:06d}"),
            defaults={
                "borrower": borrower,
                "full_name": full_name,
                "phone": pick(row, "Phone", "Phone Number"),
                "email": pick(row, "Email", "Email Address"),
                "address": pick(row, "Address", "Residential Address"),
                "employment_status": pick(row, "Employment Status"),
                "requested_amount": parse_amount(pick(row, "Requested Amount")),
                "purpose": pick(row, "Purpose", default="General"),
                "term_months": as_int(pick(row, "Loan Term"), 12),
                "status": status,
                "submitted_at": submitted,
                "reviewed_at": timezone.now() if reviewed else None,
                "reviewed_by": system_user if reviewed else None,
            },
        )
        return IMPORTED

    return _run(cfg, "applications", "Applications", handle)


# Later entities hold foreign keys into earlier ones.
IMPORTERS = [
    import_borrowers,
    import_loans,
    import_repayments,
    import_savings,
    import_deposits,
    import_withdrawals,
    import_expenses,
    import_applications,
]


def record_run(action: str, cfg: "Config", started_at: datetime, stats: Dict[str, Any]) -> ImportRun:
    return ImportRun.objects.create(
        action=action,
        source_dir=str(cfg.csv_dir),
        started_at=started_at,
        finished_at=timezone.now(),
        stats=stats,
    )


def import_all(cfg: "Config") -> List[ImportResult]:
    """Run every importer in dependency order and record an ImportRun."""
    started = timezone.now()
    logger.info("Starting CSV data migration from %s", cfg.csv_dir)
    results = [importer(cfg) for importer in IMPORTERS]
    record_run("import-all", cfg, started, {r.table: r.as_dict() for r in results})

    ok = sum(1 for r in results if r.success)
    total = sum(r.imported for r in results)
    prefix = "✅" if ok == len(results) else "⚠️"
    logger.info("%s Migration finished: %d/%d tables, %d records imported", prefix, ok, len(results), total)
    return results


def clear_all_data() -> Dict[str, int]:
    """Delete every lending row, children first. Users and import runs are kept."""
    logger.info("Clearing existing data...")
    deleted: Dict[str, int] = {}
    for label, model in (
        ("notifications", Notification),
        ("repayments", Repayment),
        ("deposits", Deposit),
        ("withdrawals", Withdrawal),
        ("savings", Savings),
        ("loans", Loan),
        ("applications", LoanApplication),
        ("expenses", Expense),
        ("borrowers", Borrower),
    ):
        count, _ = model.objects.all().delete()
        deleted[label] = count
    logger.info("✅ Cleared: %s", ", ".join(f"{k}={v}" for k, v in deleted.items()))
    return deleted


def import_status() -> Dict[str, int]:
    return {
        "borrowers": Borrower.objects.count(),
        "loans": Loan.objects.count(),
        "repayments": Repayment.objects.count(),
        "savings": Savings.objects.count(),
        "deposits": Deposit.objects.count(),
        "withdrawals": Withdrawal.objects.count(),
        "expenses": Expense.objects.count(),
        "applications": LoanApplication.objects.count(),
    }
