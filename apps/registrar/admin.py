# registrar/admin.py

from django.contrib import admin
from .models import DocumentRequest, Payment, PaymentWebhook, Notification


class PaymentInline(admin.TabularInline):
    model = Payment
    extra = 0
    fields = ['method', 'amount', 'status', 'payment_reference_number', 'payment_intent_id', 'paid_at']
    readonly_fields = fields
    can_delete = False


@admin.register(DocumentRequest)
class DocumentRequestAdmin(admin.ModelAdmin):
    """
    Read-mostly view: status changes go through DocumentRequestService so
    they are validated, audited and notified.
    """
    list_display = [
        'request_number', 'student', 'document_type', 'quantity',
        'processing_type', 'amount', 'status', 'payment_deadline', 'created_at'
    ]
    list_filter = ['status', 'document_type', 'processing_type', 'payment_method']
    search_fields = ['request_number', 'student__student_number', 'student__last_name', 'released_to']
    date_hierarchy = 'created_at'
    inlines = [PaymentInline]
    readonly_fields = [
        'request_number', 'amount', 'status', 'payment_deadline',
        'processed_by_id', 'released_by_id', 'released_to', 'released_id_type',
        'released_id_number', 'released_at', 'created_at', 'updated_at'
    ]

    fieldsets = (
        ('Request', {
            'fields': ('request_number', 'student', 'document_type', 'quantity', 'purpose', 'processing_type', 'notes')
        }),
        ('Payment', {
            'fields': ('amount', 'payment_method', 'status', 'payment_deadline')
        }),
        ('Processing & Release', {
            'fields': (
                'processed_by_id', 'released_by_id', 'released_to', 'released_id_type',
                'released_id_number', 'released_at', 'rejection_reason', 'cancellation_reason'
            ),
            'classes': ('collapse',)
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ['document_request', 'method', 'amount', 'status', 'payment_reference_number', 'paid_at']
    list_filter = ['method', 'status']
    search_fields = ['payment_reference_number', 'payment_intent_id', 'document_request__request_number']
    readonly_fields = ['metadata', 'created_at', 'updated_at']


@admin.register(PaymentWebhook)
class PaymentWebhookAdmin(admin.ModelAdmin):
    list_display = ['event_id', 'event_type', 'processed', 'processed_at', 'created_at']
    list_filter = ['processed', 'event_type']
    search_fields = ['event_id']
    readonly_fields = ['event_id', 'event_type', 'payload', 'processed', 'processed_at', 'error_message', 'created_at']

    def has_add_permission(self, request):
        return False


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ['recipient', 'channel', 'subject', 'status', 'sent_at', 'created_at']
    list_filter = ['channel', 'status']
    search_fields = ['recipient', 'subject', 'document_request__request_number']
