from django.apps import AppConfig


class ResortManagementConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "resort_management"
    verbose_name = "Resort management"
