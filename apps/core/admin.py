# core/admin.py

from django.contrib import admin
from .models import PortalSettings


@admin.register(PortalSettings)
class PortalSettingsAdmin(admin.ModelAdmin):
    fieldsets = (
        ('Document Requests', {
            'fields': ('payment_window_hours', 'daily_request_limit', 'regular_price', 'rush_price')
        }),
        ('Scholarships', {
            'fields': ('renewal_reminder_days',)
        }),
        ('Notifications', {
            'fields': ('enable_sms', 'enable_email')
        }),
    )

    def has_add_permission(self, request):
        return not PortalSettings.objects.exists()

    def has_delete_permission(self, request, obj=None):
        return False
