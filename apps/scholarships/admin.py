# scholarships/admin.py

from django.contrib import admin
from django.http import HttpResponse
from django.utils import timezone
from .exports import export_recipients_excel
from .models import Scholarship, ScholarshipRecipient


@admin.register(Scholarship)
class ScholarshipAdmin(admin.ModelAdmin):
    list_display = ['name', 'code', 'scholarship_type', 'provider', 'amount', 'is_active']
    list_filter = ['scholarship_type', 'is_active']
    search_fields = ['name', 'code', 'provider']


@admin.register(ScholarshipRecipient)
class ScholarshipRecipientAdmin(admin.ModelAdmin):
    list_display = [
        'student', 'scholarship', 'academic_year', 'semester', 'amount',
        'status', 'renewal_status', 'expiration_date', 'requirements_complete'
    ]
    list_filter = ['status', 'renewal_status', 'semester', 'academic_year', 'scholarship']
    search_fields = ['student__student_number', 'student__last_name', 'scholarship__name']
    raw_id_fields = ['student', 'previous_recipient']
    actions = ['export_selected_excel']

    @admin.action(description='Export selected recipients to Excel')
    def export_selected_excel(self, request, queryset):
        response = HttpResponse(
            export_recipients_excel(queryset=queryset),
            content_type='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
        )
        response['Content-Disposition'] = (
            f'attachment; filename="scholarship_recipients_{timezone.now().strftime("%Y%m%d")}.xlsx"'
        )
        return response
