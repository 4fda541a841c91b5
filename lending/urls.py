from django.urls import path

from lending import api

urlpatterns = [
    path("reports/portfolio", api.api_portfolio_report, name="report-portfolio"),
    path("reports/repayments", api.api_repayment_report, name="report-repayments"),
    path("reports/borrowers", api.api_borrower_report, name="report-borrowers"),
    path("reports/export/<str:kind>", api.api_export_report, name="report-export"),
    path("import/status", api.api_import_status, name="import-status"),
    path("notifications", api.api_notifications, name="notifications"),
    path("notifications/<int:notification_id>/read", api.api_notification_read, name="notification-read"),
]
