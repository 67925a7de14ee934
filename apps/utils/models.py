# utils/models.py

"""
Base models for the campus portal with an automatic audit trail.

Key Features:
- UUID primary keys and timezone-aware created/updated timestamps
- User and IP tracking from the thread-local request context
- Field-level change tracking written to AuditLog on every save/delete
- Change reason tracking
"""

from django.db import models
from django.core.serializers.json import DjangoJSONEncoder
from django.utils import timezone
import uuid
import logging

logger = logging.getLogger(__name__)

AUDIT_EXCLUDED_FIELDS = (
    'id', 'created_at', 'updated_at', 'created_by_id',
    'updated_by_id', 'created_from_ip', 'updated_from_ip',
)


# =============================================================================
# BASE MODEL
# =============================================================================

class BaseModel(models.Model):
    """
    Abstract base for every portal record.

    Features:
    - Automatic user tracking (who created/updated)
    - Client IP tracking (where operations came from)
    - Change reason tracking (why changes were made)
    - CREATE/UPDATE/DELETE entries in AuditLog with field-level changes

    Example:
        request.set_change_reason("Student corrected quantity")
        request.save()
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    created_at = models.DateTimeField("Created At", db_index=True, editable=False)
    updated_at = models.DateTimeField("Updated At", db_index=True, editable=False)

    # CharField so records stay decoupled from the auth user table
    created_by_id = models.CharField(
        "Created By ID",
        max_length=50,
        null=True,
        blank=True,
        db_index=True,
        help_text="ID of user who created this record"
    )
    updated_by_id = models.CharField(
        "Updated By ID",
        max_length=50,
        null=True,
        blank=True,
        db_index=True,
        help_text="ID of user who last updated this record"
    )

    created_from_ip = models.GenericIPAddressField("Created From IP", null=True, blank=True)
    updated_from_ip = models.GenericIPAddressField("Updated From IP", null=True, blank=True)

    change_reason = models.CharField(
        "Change Reason",
        max_length=255,
        blank=True,
        null=True,
        help_text="Explanation for why this change was made"
    )

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        """
        Override save to:
        1. Set created_at / updated_at
        2. Populate audit fields (created_by, updated_by, IPs) from the request context
        3. Track field changes against the stored row
        4. Create an audit log entry
        """
        from utils.context import get_request_context

        is_new = self._state.adding
        now = timezone.now()

        if is_new:
            if not self.created_at:
                self.created_at = now
            if not self.updated_at:
                self.updated_at = now
        else:
            self.updated_at = now

        context = get_request_context()

        if context:
            user = context.get('user')
            ip_address = context.get('ip_address')

            if is_new:
                if user and not self.created_by_id:
                    self.created_by_id = str(user.pk)
                if ip_address and not self.created_from_ip:
                    self.created_from_ip = ip_address

            if user:
                self.updated_by_id = str(user.pk)
            if ip_address:
                self.updated_from_ip = ip_address

        changes = {}
        if not is_new and self.pk:
            try:
                old_instance = self.__class__.objects.get(pk=self.pk)
                for field in self._meta.fields:
                    if field.name in AUDIT_EXCLUDED_FIELDS:
                        continue
                    old_value = getattr(old_instance, field.attname)
                    new_value = getattr(self, field.attname)
                    if old_value != new_value:
                        changes[field.name] = {
                            'old': str(old_value) if old_value is not None else None,
                            'new': str(new_value) if new_value is not None else None,
                        }
            except self.__class__.DoesNotExist:
                logger.debug(f"Old instance not found for {self.__class__.__name__} {self.pk}")

        result = super().save(*args, **kwargs)

        self._create_audit_log(
            action='CREATE' if is_new else 'UPDATE',
            changes=changes,
        )

        return result

    def delete(self, *args, **kwargs):
        """Log the deletion before the row disappears."""
        self._create_audit_log(action='DELETE', changes={})
        return super().delete(*args, **kwargs)

    # -------------------------------------------------------------------------
    # AUDIT TRAIL HELPER METHODS
    # -------------------------------------------------------------------------

    def _create_audit_log(self, action, changes):
        """
        Create an audit log entry for this change.

        Failures are logged and swallowed so auditing never blocks a save.
        """
        from utils.context import get_request_context

        try:
            context = get_request_context()

            user_id = None
            user_email = ""
            user_name = ""

            if context and context.get('user'):
                user = context['user']
                user_id = str(user.pk)
                user_email = getattr(user, 'email', '')
                user_name = user.get_full_name() if hasattr(user, 'get_full_name') else str(user)

            AuditLog.objects.create(
                content_type=f"{self._meta.app_label}.{self._meta.model_name}",
                object_id=str(self.pk),
                object_repr=str(self)[:200],
                action=action,
                changes=changes,
                user_id=user_id,
                user_email=user_email,
                user_name=user_name,
                ip_address=context.get('ip_address') if context else None,
                user_agent=context.get('user_agent', '')[:255] if context else '',
                change_reason=self.change_reason or '',
                request_path=context.get('request_path', '') if context else '',
            )
        except Exception as e:
            logger.error(f"Failed to create audit log: {e}", exc_info=True)

    def get_history(self, limit=10):
        return AuditLog.objects.filter(
            content_type=f"{self._meta.app_label}.{self._meta.model_name}",
            object_id=str(self.pk)
        ).order_by('-timestamp')[:limit]

    def set_change_reason(self, reason):
        """
        Set the reason for the next change to this object.

        Usage:
            document_request.set_change_reason("Cancelled by registrar override")
            document_request.save()
        """
        self.change_reason = reason


# =============================================================================
# AUDIT LOG MODEL
# =============================================================================

class AuditLog(models.Model):
    """
    Audit trail for model changes and portal actions.

    Row-level entries (CREATE/UPDATE/DELETE) come from BaseModel. Domain
    entries (payment_confirmed, document_released, ...) come from
    utils.audit.log_activity and carry a description plus metadata.
    """

    ACTION_CHOICES = (
        ('CREATE', 'Created'),
        ('UPDATE', 'Updated'),
        ('DELETE', 'Deleted'),
    )

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    content_type = models.CharField("Model Type", max_length=100, db_index=True)
    object_id = models.CharField("Object ID", max_length=100, db_index=True)
    object_repr = models.CharField("Object Representation", max_length=200)
    action = models.CharField("Action", max_length=40, db_index=True)

    changes = models.JSONField(
        "Changes",
        help_text="Dictionary of field changes: {'field_name': {'old': 'value', 'new': 'value'}}",
        default=dict,
        blank=True
    )
    description = models.TextField("Description", blank=True)
    metadata = models.JSONField("Metadata", default=dict, blank=True, encoder=DjangoJSONEncoder)

    user_id = models.CharField("User ID", max_length=50, db_index=True, null=True, blank=True)
    user_email = models.EmailField("User Email", max_length=255, blank=True)
    user_name = models.CharField("User Name", max_length=255, blank=True)

    timestamp = models.DateTimeField("Timestamp", db_index=True)

    ip_address = models.GenericIPAddressField("IP Address", null=True, blank=True)
    user_agent = models.TextField("User Agent", blank=True)
    change_reason = models.CharField("Change Reason", max_length=255, blank=True)
    request_path = models.CharField("Request Path", max_length=255, blank=True)

    class Meta:
        ordering = ['-timestamp']
        indexes = [
            models.Index(fields=['content_type', 'object_id']),
            models.Index(fields=['user_id', 'timestamp']),
        ]
        verbose_name = "Audit Log"
        verbose_name_plural = "Audit Logs"

    def __str__(self):
        return f"{self.action} {self.content_type} {self.object_id} at {self.timestamp}"

    def save(self, *args, **kwargs):
        if not self.timestamp:
            self.timestamp = timezone.now()
        return super().save(*args, **kwargs)

    def get_action_display(self):
        return dict(self.ACTION_CHOICES).get(self.action, self.action.replace('_', ' ').capitalize())

    def get_changes_display(self):
        """Get a human-readable display of changes"""
        if not self.changes:
            return "No field changes recorded"

        lines = []
        for field, change in self.changes.items():
            old_val = change.get('old', 'N/A')
            new_val = change.get('new', 'N/A')
            lines.append(f"{field}: '{old_val}' → '{new_val}'")

        return "\n".join(lines)

