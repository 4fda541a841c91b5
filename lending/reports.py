"""Portfolio, repayment and borrower reports plus CSV exports."""
from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from dateutil.relativedelta import relativedelta
from django.db.models import Avg, Count, Q, Sum
from django.db.models.functions import TruncMonth
from django.utils import timezone
from django.utils.dateparse import parse_date

from lending.exceptions import LendingError
from lending.models import OPEN_LOAN_STATUSES, Borrower, CreditRating, Expense, Loan, Repayment

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

PRINCIPAL_BUCKETS = [
    (Decimal("100000"), "Under 100K"),
    (Decimal("500000"), "100K - 500K"),
    (Decimal("1000000"), "500K - 1M"),
    (Decimal("5000000"), "1M - 5M"),
]
OVER_BUCKET = "Over 5M"

OVERDUE_BUCKETS = [(30, "1-30 days"), (60, "31-60 days"), (90, "61-90 days")]
OVERDUE_OVER = "Over 90 days"

AGE_GROUPS = [(25, "Under 25"), (35, "25-34"), (45, "35-44"), (55, "45-54")]
AGE_OVER = "55+"


@dataclass
class ReportFilter:
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    borrower_id: str = ""
    loan_status: str = ""

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "ReportFilter":
        def _date(key: str) -> Optional[date]:
            raw = (params.get(key) or "").strip()
            if not raw:
                return None
            try:
                value = parse_date(raw)
            except ValueError:
                value = None
            if value is None:
                raise LendingError("Invalid date", code="invalid_filter", fields={key: "Use YYYY-MM-DD"})
            return value

        return cls(
            start_date=_date("start_date"),
            end_date=_date("end_date"),
            borrower_id=(params.get("borrower_id") or "").strip(),
            loan_status=(params.get("loan_status") or "").strip().upper(),
        )

    def date_q(self, field: str) -> Q:
        q = Q()
        if self.start_date:
            q &= Q(**{f"{field}__date__gte": self.start_date})
        if self.end_date:
            q &= Q(**{f"{field}__date__lte": self.end_date})
        return q


def _f(value) -> float:
    return float(value or 0)


def _month_keys(months: int) -> List[str]:
    first = timezone.localdate().replace(day=1)
    return [(first - relativedelta(months=i)).strftime("%Y-%m") for i in range(months - 1, -1, -1)]


def _by_month(qs, date_field: str, since: date, **aggregates) -> Dict[str, Dict[str, Any]]:
    rows = (
        qs.filter(**{f"{date_field}__date__gte": since})
        .annotate(period=TruncMonth(date_field))
        .values("period")
        .annotate(**aggregates)
    )
    return {r["period"].strftime("%Y-%m"): r for r in rows if r["period"]}


def principal_bucket(principal: Decimal) -> str:
    for upper, label in PRINCIPAL_BUCKETS:
        if principal < upper:
            return label
    return OVER_BUCKET


def overdue_bucket(days_past_due: int) -> str:
    for upper, label in OVERDUE_BUCKETS:
        if days_past_due <= upper:
            return label
    return OVERDUE_OVER


def age_group(born: date, today: date) -> str:
    years = relativedelta(today, born).years
    for upper, label in AGE_GROUPS:
        if years < upper:
            return label
    return AGE_OVER


def _loans(filter: ReportFilter):
    qs = Loan.objects.filter(filter.date_q("created_at"))
    if filter.borrower_id:
        qs = qs.filter(borrower__borrower_id=filter.borrower_id)
    if filter.loan_status:
        qs = qs.filter(status=filter.loan_status)
    return qs


def _repayments(filter: ReportFilter):
    qs = Repayment.objects.filter(filter.date_q("paid_at"))
    if filter.borrower_id:
        qs = qs.filter(borrower__borrower_id=filter.borrower_id)
    if filter.loan_status:
        qs = qs.filter(loan__status=filter.loan_status)
    return qs


# ---------------------------
# Reports
# ---------------------------

def loan_portfolio_report(filter: Optional[ReportFilter] = None) -> Dict[str, Any]:
    filter = filter or ReportFilter()
    loans = _loans(filter)
    repayments = _repayments(filter)

    totals = loans.aggregate(disbursed=Sum("disbursed_amount"), interest=Sum("total_interest"))
    outstanding = loans.filter(status__in=OPEN_LOAN_STATUSES).aggregate(v=Sum("outstanding_balance"))["v"] or ZERO
    repaid = repayments.aggregate(v=Sum("amount"))["v"] or ZERO
    fees = Expense.objects.filter(
        **({"expense_date__gte": filter.start_date} if filter.start_date else {}),
        **({"expense_date__lte": filter.end_date} if filter.end_date else {}),
    ).aggregate(v=Sum("amount"))["v"] or ZERO
    disbursed = totals["disbursed"] or ZERO

    by_status = {r["status"]: r["n"] for r in loans.values("status").annotate(n=Count("id"))}
    by_amount = {label: 0 for _, label in PRINCIPAL_BUCKETS}
    by_amount[OVER_BUCKET] = 0
    for principal in loans.values_list("principal", flat=True):
        by_amount[principal_bucket(principal)] += 1

    keys = _month_keys(12)
    since = date.fromisoformat(keys[0] + "-01")
    disbursements = _by_month(
        loans.exclude(disbursed_at=None), "disbursed_at", since, amount=Sum("disbursed_amount"), n=Count("id")
    )
    monthly_repaid = _by_month(repayments, "paid_at", since, amount=Sum("amount"))
    trends = [
        {
            "month": key,
            "disbursements": _f(disbursements.get(key, {}).get("amount")),
            "repayments": _f(monthly_repaid.get(key, {}).get("amount")),
            "new_loans": int(disbursements.get(key, {}).get("n") or 0),
        }
        for key in keys
    ]

    loan_ids = loans.values("id")
    top = (
        Borrower.objects.filter(loans__in=loan_ids)
        .annotate(total_borrowed=Sum("loans__disbursed_amount"), current_balance=Sum("loans__outstanding_balance"))
        .order_by("-total_borrowed")[:10]
    )
    top = list(top)
    repaid_by_borrower = dict(
        Repayment.objects.filter(borrower__in=top)
        .values("borrower")
        .annotate(v=Sum("amount"))
        .values_list("borrower", "v")
    )

    return {
        "summary": {
            "total_disbursed": _f(disbursed),
            "total_repayments": _f(repaid),
            "outstanding_balance": _f(outstanding),
            "total_interest": _f(totals["interest"]),
            "total_fees": _f(fees),
            "net_profit": _f(repaid - disbursed - fees),
            "collection_rate": round(_f(repaid) / _f(disbursed) * 100, 2) if disbursed > 0 else 0.0,
        },
        "loans_by_status": by_status,
        "loans_by_amount": by_amount,
        "monthly_trends": trends,
        "top_borrowers": [
            {
                "borrower_id": b.borrower_id,
                "name": b.full_name,
                "phone": b.phone,
                "total_borrowed": _f(b.total_borrowed),
                "total_repaid": _f(repaid_by_borrower.get(b.pk)),
                "current_balance": _f(b.current_balance),
            }
            for b in top
        ],
    }


def repayment_report(filter: Optional[ReportFilter] = None) -> Dict[str, Any]:
    filter = filter or ReportFilter()
    repayments = _repayments(filter)

    agg = repayments.aggregate(n=Count("id"), total=Sum("amount"), avg=Avg("amount"))
    on_time = repayments.filter(status=Repayment.Status.COMPLETED).count()
    late = repayments.filter(status=Repayment.Status.LATE).count()

    methods = {
        r["payment_method"]: {"count": r["n"], "amount": _f(r["amount"])}
        for r in repayments.values("payment_method").annotate(n=Count("id"), amount=Sum("amount"))
    }

    keys = _month_keys(6)
    monthly = _by_month(
        repayments, "paid_at", date.fromisoformat(keys[0] + "-01"), n=Count("id"), amount=Sum("amount"), avg=Avg("amount")
    )
    monthly_rows = [
        {
            "month": key,
            "count": int(monthly.get(key, {}).get("n") or 0),
            "amount": _f(monthly.get(key, {}).get("amount")),
            "average_amount": round(_f(monthly.get(key, {}).get("avg")), 2),
        }
        for key in keys
    ]

    today = timezone.localdate()
    ageing = {label: {"count": 0, "amount": 0.0} for _, label in OVERDUE_BUCKETS}
    ageing[OVERDUE_OVER] = {"count": 0, "amount": 0.0}
    overdue_amount = ZERO
    overdue = _loans(ReportFilter(borrower_id=filter.borrower_id)).filter(
        status__in=OPEN_LOAN_STATUSES, next_payment_date__lt=today
    )
    overdue_count = 0
    for due, balance in overdue.values_list("next_payment_date", "outstanding_balance"):
        bucket = ageing[overdue_bucket((today - due).days)]
        bucket["count"] += 1
        bucket["amount"] += _f(balance)
        overdue_amount += balance
        overdue_count += 1

    return {
        "summary": {
            "total_repayments": agg["n"],
            "total_amount": _f(agg["total"]),
            "average_payment": round(_f(agg["avg"]), 2),
            "on_time_payments": on_time,
            "late_payments": late,
        },
        "payment_methods": methods,
        "monthly_repayments": monthly_rows,
        "overdue_analysis": {
            "total_overdue": overdue_count,
            "overdue_amount": _f(overdue_amount),
            "by_age_group": ageing,
        },
    }


def borrower_report(filter: Optional[ReportFilter] = None) -> Dict[str, Any]:
    filter = filter or ReportFilter()
    borrowers = Borrower.objects.filter(filter.date_q("created_at"))
    if filter.borrower_id:
        borrowers = borrowers.filter(borrower_id=filter.borrower_id)

    today = timezone.localdate()
    month_ago = timezone.now() - relativedelta(months=1)
    avg_loan = Loan.objects.filter(borrower__in=borrowers).aggregate(v=Avg("principal"))["v"]

    by_gender = {
        (r["gender"] or "Unknown"): r["n"] for r in borrowers.values("gender").annotate(n=Count("id"))
    }
    by_location = {
        (r["district"] or "Unknown"): r["n"] for r in borrowers.values("district").annotate(n=Count("id"))
    }
    by_age: Dict[str, int] = {}
    for born in borrowers.exclude(date_of_birth=None).values_list("date_of_birth", flat=True):
        label = age_group(born, today)
        by_age[label] = by_age.get(label, 0) + 1

    ratings = {label: 0 for label in CreditRating.values}
    for r in borrowers.values("credit_rating").annotate(n=Count("id")):
        ratings[r["credit_rating"]] = r["n"]

    return {
        "summary": {
            "total_borrowers": borrowers.count(),
            "active_borrowers": borrowers.filter(status=Borrower.Status.ACTIVE).count(),
            "new_borrowers": Borrower.objects.filter(created_at__gte=month_ago).count(),
            "average_loan_size": round(_f(avg_loan), 2),
        },
        "demographics": {"by_gender": by_gender, "by_age": by_age, "by_location": by_location},
        "credit_profile": ratings,
    }


# ---------------------------
# CSV export
# ---------------------------

EXPORTS = {
    "loans": (
        ["Loan ID", "Borrower ID", "Borrower", "Principal", "Interest Rate", "Term", "Status", "Disbursed", "Outstanding"],
        lambda f: (
            [
                l.loan_id,
                l.borrower.borrower_id,
                l.borrower.full_name,
                l.principal,
                l.interest_rate,
                l.term_months,
                l.status,
                l.disbursed_at.date().isoformat() if l.disbursed_at else "",
                l.outstanding_balance,
            ]
            for l in _loans(f).select_related("borrower").order_by("loan_id")
        ),
    ),
    "repayments": (
        ["Receipt Number", "Loan ID", "Borrower", "Amount", "Method", "Status", "Paid At"],
        lambda f: (
            [
                r.receipt_number,
                r.loan.loan_id,
                r.borrower.full_name,
                r.amount,
                r.payment_method,
                r.status,
                r.paid_at.date().isoformat(),
            ]
            for r in _repayments(f).select_related("loan", "borrower").order_by("paid_at")
        ),
    ),
    "borrowers": (
        ["Borrower ID", "First Name", "Last Name", "Phone", "Email", "District", "Credit Rating", "Status"],
        lambda f: (
            [b.borrower_id, b.first_name, b.last_name, b.phone, b.email, b.district, b.credit_rating, b.status]
            for b in Borrower.objects.filter(f.date_q("created_at")).order_by("borrower_id")
        ),
    ),
}


def export_csv(kind: str, filter: Optional[ReportFilter] = None) -> str:
    if kind not in EXPORTS:
        raise LendingError(f"Unknown export '{kind}'", code="invalid_report")
    header, rows = EXPORTS[kind]
    out = io.StringIO()
    writer = csv.writer(out)
    writer.writerow(header)
    count = 0
    for row in rows(filter or ReportFilter()):
        writer.writerow(row)
        count += 1
    logger.info("Exported %d %s rows", count, kind)
    return out.getvalue()
