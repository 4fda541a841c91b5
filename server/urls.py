"""
URL configuration for the QuickCredit back office.

- /health             liveness probe
- /admin/             Django admin (borrowers, loans, savings, import runs)
- /api/...            read-only reports, import status and notifications
"""
from django.contrib import admin
from django.http import JsonResponse
from django.urls import include, path


def health(_request):
    return JsonResponse({"status": "ok"})


urlpatterns = [
    path('health', health, name='health'),
    path('health/', health, name='health_slash'),
    path('admin/', admin.site.urls),
    path('api/', include('lending.urls')),
]
