from django.conf import settings
from django.db import models


MONEY = dict(max_digits=14, decimal_places=2)


class TimestampedModel(models.Model):
    """Abstract base with created/updated timestamps for all lending tables."""
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class CreditRating(models.TextChoices):
    EXCELLENT = "Excellent", "Excellent"
    VERY_GOOD = "Very Good", "Very Good"
    GOOD = "Good", "Good"
    FAIR = "Fair", "Fair"
    POOR = "Poor", "Poor"
    NO_CREDIT = "NO_CREDIT", "No credit"


class Borrower(TimestampedModel):
    """A person eligible to hold loans and savings accounts."""

    class Status(models.TextChoices):
        ACTIVE = "ACTIVE", "Active"
        INACTIVE = "INACTIVE", "Inactive"
        BLACKLISTED = "BLACKLISTED", "Blacklisted"

    borrower_id = models.CharField(max_length=32, unique=True)
    first_name = models.CharField(max_length=128)
    last_name = models.CharField(max_length=128, blank=True)
    phone = models.CharField(max_length=20, unique=True)
    email = models.EmailField(blank=True)
    gender = models.CharField(max_length=16, blank=True)
    date_of_birth = models.DateField(null=True, blank=True)
    national_id = models.CharField(max_length=64, unique=True, null=True, blank=True)
    district = models.CharField(max_length=128, blank=True)
    subcounty = models.CharField(max_length=128, blank=True)
    village = models.CharField(max_length=128, blank=True)
    occupation = models.CharField(max_length=128, blank=True)
    monthly_income = models.DecimalField(null=True, blank=True, **MONEY)
    credit_rating = models.CharField(max_length=16, choices=CreditRating.choices, default=CreditRating.NO_CREDIT)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.ACTIVE)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name="borrowers_created"
    )

    class Meta:
        indexes = [
            models.Index(fields=["status"], name="lending_borrower_status_idx"),
            models.Index(fields=["district"], name="lending_borrower_district_idx"),
        ]
        ordering = ["borrower_id"]

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __str__(self) -> str:
        return f"{self.borrower_id}: {self.full_name}"


class LoanApplication(TimestampedModel):
    """A request for a loan; approval creates the Loan."""

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        APPROVED = "APPROVED", "Approved"
        REJECTED = "REJECTED", "Rejected"

    application_id = models.CharField(max_length=32, unique=True)
    borrower = models.ForeignKey(Borrower, on_delete=models.CASCADE, related_name="applications")
    # Applicant details as captured on the form
    full_name = models.CharField(max_length=255, blank=True)
    phone = models.CharField(max_length=32, blank=True)
    email = models.CharField(max_length=255, blank=True)
    address = models.CharField(max_length=255, blank=True)
    employment_status = models.CharField(max_length=128, blank=True)
    requested_amount = models.DecimalField(default=0, **MONEY)
    approved_amount = models.DecimalField(null=True, blank=True, **MONEY)
    purpose = models.CharField(max_length=255, default="General")
    term_months = models.PositiveIntegerField(default=12)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    submitted_at = models.DateTimeField(null=True, blank=True)
    reviewed_at = models.DateTimeField(null=True, blank=True)
    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name="applications_reviewed"
    )
    rejection_reason = models.TextField(blank=True)

    class Meta:
        indexes = [models.Index(fields=["status"], name="lending_app_status_idx")]
        ordering = ["application_id"]

    def __str__(self) -> str:
        return f"{self.application_id} ({self.status})"


class Loan(TimestampedModel):
    """A loan held by a borrower, with its repayment schedule and running balance."""

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        APPROVED = "APPROVED", "Approved"
        DISBURSED = "DISBURSED", "Disbursed"
        ACTIVE = "ACTIVE", "Active"
        COMPLETED = "COMPLETED", "Completed"
        CLOSED = "CLOSED", "Closed"
        DEFAULTED = "DEFAULTED", "Defaulted"

    loan_id = models.CharField(max_length=32, unique=True)
    application = models.OneToOneField(
        LoanApplication, null=True, blank=True, on_delete=models.SET_NULL, related_name="loan"
    )
    borrower = models.ForeignKey(Borrower, on_delete=models.CASCADE, related_name="loans")
    loan_officer = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name="loans_managed"
    )
    principal = models.DecimalField(**MONEY)
    interest_rate = models.DecimalField(max_digits=5, decimal_places=2)
    term_months = models.PositiveIntegerField(default=12)
    total_interest = models.DecimalField(default=0, **MONEY)
    total_amount = models.DecimalField(default=0, **MONEY)
    monthly_payment = models.DecimalField(default=0, **MONEY)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    purpose = models.CharField(max_length=255, default="General")
    disbursed_at = models.DateTimeField(null=True, blank=True)
    disbursed_amount = models.DecimalField(null=True, blank=True, **MONEY)
    outstanding_balance = models.DecimalField(default=0, **MONEY)
    next_payment_date = models.DateField(null=True, blank=True)
    next_payment_amount = models.DecimalField(null=True, blank=True, **MONEY)

    class Meta:
        indexes = [
            models.Index(fields=["status"], name="lending_loan_status_idx"),
            models.Index(fields=["status", "next_payment_date"], name="lending_loan_status_due_idx"),
        ]
        ordering = ["loan_id"]

    def __str__(self) -> str:
        return f"{self.loan_id} ({self.status})"


# Disbursed and not yet paid off: these carry a balance and fall due.
OPEN_LOAN_STATUSES = (Loan.Status.DISBURSED, Loan.Status.ACTIVE)


class Repayment(TimestampedModel):
    """A payment applied against a loan's outstanding balance."""

    class Status(models.TextChoices):
        COMPLETED = "COMPLETED", "Completed"
        PENDING = "PENDING", "Pending"
        LATE = "LATE", "Late"
        FAILED = "FAILED", "Failed"

    receipt_number = models.CharField(max_length=64, unique=True)
    loan = models.ForeignKey(Loan, on_delete=models.CASCADE, related_name="repayments")
    borrower = models.ForeignKey(Borrower, on_delete=models.CASCADE, related_name="repayments")
    amount = models.DecimalField(**MONEY)
    principal_amount = models.DecimalField(default=0, **MONEY)
    interest_amount = models.DecimalField(default=0, **MONEY)
    payment_method = models.CharField(max_length=32, default="CASH")
    transaction_id = models.CharField(max_length=128, blank=True)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.COMPLETED)
    paid_at = models.DateTimeField()
    month = models.CharField(max_length=32, blank=True)
    notes = models.TextField(blank=True)

    class Meta:
        indexes = [models.Index(fields=["paid_at"], name="lending_repayment_paid_idx")]
        ordering = ["-paid_at"]

    def __str__(self) -> str:
        return f"{self.receipt_number}: {self.amount}"


class Savings(TimestampedModel):
    """A non-loan savings account."""

    class Status(models.TextChoices):
        ACTIVE = "ACTIVE", "Active"
        DORMANT = "DORMANT", "Dormant"
        CLOSED = "CLOSED", "Closed"

    savings_id = models.CharField(max_length=32, unique=True)
    borrower = models.ForeignKey(
        Borrower, null=True, blank=True, on_delete=models.SET_NULL, related_name="savings_accounts"
    )
    balance = models.DecimalField(default=0, **MONEY)
    interest_rate = models.DecimalField(max_digits=5, decimal_places=2, default=5)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.ACTIVE)
    opened_at = models.DateField(null=True, blank=True)

    class Meta:
        verbose_name_plural = "savings"
        ordering = ["savings_id"]

    def __str__(self) -> str:
        return f"{self.savings_id}: {self.balance}"


class Deposit(TimestampedModel):
    deposit_id = models.CharField(max_length=32, unique=True)
    account = models.ForeignKey(Savings, on_delete=models.CASCADE, related_name="deposits")
    amount = models.DecimalField(**MONEY)
    deposit_date = models.DateField()
    method = models.CharField(max_length=32, default="Cash")

    class Meta:
        ordering = ["deposit_date", "deposit_id"]

    def __str__(self) -> str:
        return f"{self.deposit_id}: +{self.amount}"


class Withdrawal(TimestampedModel):
    withdrawal_id = models.CharField(max_length=32, unique=True)
    account = models.ForeignKey(Savings, on_delete=models.CASCADE, related_name="withdrawals")
    amount = models.DecimalField(**MONEY)
    withdrawal_date = models.DateField()
    method = models.CharField(max_length=32, default="CASH")

    class Meta:
        ordering = ["withdrawal_date", "withdrawal_id"]

    def __str__(self) -> str:
        return f"{self.withdrawal_id}: -{self.amount}"


class Expense(TimestampedModel):
    expense_id = models.CharField(max_length=32, unique=True)
    description = models.CharField(max_length=255, default="General Expense")
    amount = models.DecimalField(**MONEY)
    category = models.CharField(max_length=64, default="OPERATIONAL")
    expense_date = models.DateField()

    class Meta:
        indexes = [models.Index(fields=["category"], name="lending_expense_category_idx")]
        ordering = ["-expense_date"]

    def __str__(self) -> str:
        return f"{self.expense_id}: {self.description}"


class Notification(TimestampedModel):
    """Outbound message to a borrower (or staff) and its delivery state."""

    class Type(models.TextChoices):
        PAYMENT_REMINDER = "PAYMENT_REMINDER", "Payment reminder"
        PAYMENT_RECEIVED = "PAYMENT_RECEIVED", "Payment received"
        LOAN_APPROVED = "LOAN_APPROVED", "Loan approved"
        LOAN_DISBURSED = "LOAN_DISBURSED", "Loan disbursed"
        SYSTEM_ALERT = "SYSTEM_ALERT", "System alert"
        OVERDUE_NOTICE = "OVERDUE_NOTICE", "Overdue notice"

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        SENT = "SENT", "Sent"
        FAILED = "FAILED", "Failed"

    type = models.CharField(max_length=32, choices=Type.choices)
    title = models.CharField(max_length=255)
    message = models.TextField()
    priority = models.CharField(max_length=8, default="medium")  # low|medium|high
    channels = models.JSONField(default=list, blank=True)
    borrower = models.ForeignKey(
        Borrower, null=True, blank=True, on_delete=models.CASCADE, related_name="notifications"
    )
    loan = models.ForeignKey(Loan, null=True, blank=True, on_delete=models.CASCADE, related_name="notifications")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.CASCADE, related_name="notifications"
    )
    metadata = models.JSONField(default=dict, blank=True)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    sent_at = models.DateTimeField(null=True, blank=True)
    is_read = models.BooleanField(default=False)
    read_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=["status"], name="lending_notif_status_idx"),
            models.Index(fields=["user", "is_read"], name="lending_notif_user_read_idx"),
        ]
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.type}:{self.status}"


class ImportRun(TimestampedModel):
    """Audit trail for ETL/repair actions and their computed stats."""
    action = models.CharField(max_length=64)
    source_dir = models.CharField(max_length=255, blank=True)
    started_at = models.DateTimeField(null=True, blank=True)
    finished_at = models.DateTimeField(null=True, blank=True)
    stats = models.JSONField(default=dict, blank=True)

    class Meta:
        indexes = [models.Index(fields=["action", "created_at"], name="lending_importrun_action_idx")]
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.action}@{self.created_at:%Y-%m-%d %H:%M:%S}"
