from django.conf import settings
from django.db.utils import OperationalError, ProgrammingError
from django.http import HttpResponse

from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.response import Response

from lending import reports
from lending.models import ImportRun, Notification
from lending.notifications import NotificationService
from utils.errors import error_response


def _db_unavailable(e: Exception) -> Response:
    detail = "Database not initialized"
    if settings.DEBUG:
        detail = f"{detail}: {e.__class__.__name__}: {str(e)}".strip()
    return error_response(detail, status_code=status.HTTP_503_SERVICE_UNAVAILABLE, code='db_unavailable')


@api_view(['GET'])
def api_portfolio_report(request):
    try:
        flt = reports.ReportFilter.from_params(request.GET)
        return Response(reports.loan_portfolio_report(flt))
    except (ProgrammingError, OperationalError) as e:
        return _db_unavailable(e)


@api_view(['GET'])
def api_repayment_report(request):
    try:
        flt = reports.ReportFilter.from_params(request.GET)
        return Response(reports.repayment_report(flt))
    except (ProgrammingError, OperationalError) as e:
        return _db_unavailable(e)


@api_view(['GET'])
def api_borrower_report(request):
    try:
        flt = reports.ReportFilter.from_params(request.GET)
        return Response(reports.borrower_report(flt))
    except (ProgrammingError, OperationalError) as e:
        return _db_unavailable(e)


@api_view(['GET'])
def api_export_report(request, kind: str):
    flt = reports.ReportFilter.from_params(request.GET)
    body = reports.export_csv(kind, flt)
    resp = HttpResponse(body, content_type="text/csv; charset=utf-8")
    resp["Content-Disposition"] = f'attachment; filename="{kind}-report.csv"'
    return resp


@api_view(['GET'])
def api_import_status(request):
    # Imported lazily: the ETL package pulls in its own logger and paths.
    from scripts.etl.quickcredit.importers import import_status

    try:
        last = ImportRun.objects.order_by("-created_at").first()
        return Response(
            {
                "counts": import_status(),
                "last_run": {
                    "action": last.action,
                    "source_dir": last.source_dir,
                    "started_at": last.started_at,
                    "finished_at": last.finished_at,
                    "stats": last.stats,
                }
                if last
                else None,
            }
        )
    except (ProgrammingError, OperationalError) as e:
        return _db_unavailable(e)


def _notification_json(n: Notification) -> dict:
    return {
        "id": n.pk,
        "type": n.type,
        "title": n.title,
        "message": n.message,
        "priority": n.priority,
        "status": n.status,
        "is_read": n.is_read,
        "read_at": n.read_at,
        "created_at": n.created_at,
    }


@api_view(['GET'])
def api_notifications(request):
    try:
        limit = max(1, min(100, int(request.GET.get("limit", 20))))
    except ValueError:
        return error_response(
            "Invalid request", status_code=status.HTTP_400_BAD_REQUEST, code='invalid', fields={"limit": "Must be an integer"}
        )
    items = NotificationService().list_for_user(request.user, limit=limit)
    return Response({"count": len(items), "results": [_notification_json(n) for n in items]})


@api_view(['POST'])
def api_notification_read(request, notification_id: int):
    n = NotificationService().mark_as_read(notification_id, user=request.user)
    return Response(_notification_json(n))
