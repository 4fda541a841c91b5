from django.apps import AppConfig


class LendingConfig(AppConfig):
    """Django AppConfig for the lending app (borrowers, loans, savings)."""
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'lending'
    verbose_name = 'Lending'
