from django.contrib import admin

from .models import (
    Borrower,
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


@admin.register(Borrower)
class BorrowerAdmin(admin.ModelAdmin):
    list_display = ("borrower_id", "first_name", "last_name", "phone", "district", "credit_rating", "status")
    search_fields = ("borrower_id", "first_name", "last_name", "phone", "national_id")
    list_filter = ("status", "credit_rating", "district")


@admin.register(LoanApplication)
class LoanApplicationAdmin(admin.ModelAdmin):
    list_display = ("application_id", "borrower", "requested_amount", "term_months", "status", "submitted_at")
    search_fields = ("application_id", "full_name", "borrower__borrower_id")
    list_filter = ("status",)


class RepaymentInline(admin.TabularInline):
    model = Repayment
    extra = 0
    fields = ("receipt_number", "amount", "payment_method", "status", "paid_at")


@admin.register(Loan)
class LoanAdmin(admin.ModelAdmin):
    list_display = ("loan_id", "borrower", "principal", "interest_rate", "status", "outstanding_balance", "next_payment_date")
    search_fields = ("loan_id", "borrower__borrower_id", "borrower__first_name", "borrower__last_name")
    list_filter = ("status",)
    inlines = [RepaymentInline]


@admin.register(Repayment)
class RepaymentAdmin(admin.ModelAdmin):
    list_display = ("receipt_number", "loan", "amount", "payment_method", "status", "paid_at")
    search_fields = ("receipt_number", "loan__loan_id", "transaction_id")
    list_filter = ("status", "payment_method")


@admin.register(Savings)
class SavingsAdmin(admin.ModelAdmin):
    list_display = ("savings_id", "borrower", "balance", "interest_rate", "status", "opened_at")
    search_fields = ("savings_id", "borrower__borrower_id")
    list_filter = ("status",)


@admin.register(Deposit)
class DepositAdmin(admin.ModelAdmin):
    list_display = ("deposit_id", "account", "amount", "deposit_date", "method")
    search_fields = ("deposit_id", "account__savings_id")


@admin.register(Withdrawal)
class WithdrawalAdmin(admin.ModelAdmin):
    list_display = ("withdrawal_id", "account", "amount", "withdrawal_date", "method")
    search_fields = ("withdrawal_id", "account__savings_id")


@admin.register(Expense)
class ExpenseAdmin(admin.ModelAdmin):
    list_display = ("expense_id", "description", "amount", "category", "expense_date")
    search_fields = ("expense_id", "description")
    list_filter = ("category",)


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ("type", "title", "borrower", "status", "priority", "is_read", "created_at")
    list_filter = ("type", "status", "priority")


@admin.register(ImportRun)
class ImportRunAdmin(admin.ModelAdmin):
    list_display = ("action", "created_at", "started_at", "finished_at")
    search_fields = ("action",)
    list_filter = ("action",)
