# utils/audit.py

import logging

audit_logger = logging.getLogger("portal_audit")
logger = logging.getLogger(__name__)


def log_activity(
    action,
    target_object=None,
    description='',
    user=None,
    old_values=None,
    new_values=None,
    metadata=None,
):
    """
    Record a portal action (payment_confirmed, document_released, ...) in the
    audit trail and on the ``portal_audit`` logger.

    Args:
        action (str): Action key, e.g. 'document_request_created'.
        target_object (Model instance, optional): Object affected.
        description (str, optional): Human-readable summary.
        user (User instance, optional): Acting user; defaults to the request context user.
        old_values (dict, optional): Values before the change.
        new_values (dict, optional): Values after the change.
        metadata (dict, optional): Extra context-specific data.
    """
    audit_logger.info(f"{action}: {description}")

    try:
        from utils.models import AuditLog
        from utils.context import get_request_context

        context = get_request_context() or {}
        if user is None:
            user = context.get('user')

        changes = {}
        for field in set(old_values or {}) | set(new_values or {}):
            old = (old_values or {}).get(field)
            new = (new_values or {}).get(field)
            if old != new:
                changes[field] = {
                    'old': str(old) if old is not None else None,
                    'new': str(new) if new is not None else None,
                }

        AuditLog.objects.create(
            content_type=(
                f"{target_object._meta.app_label}.{target_object._meta.model_name}"
                if target_object is not None else ''
            ),
            object_id=str(target_object.pk) if target_object is not None else '',
            object_repr=str(target_object)[:200] if target_object is not None else '',
            action=action,
            changes=changes,
            description=description,
            metadata=metadata or {},
            user_id=str(user.pk) if user is not None else None,
            user_email=getattr(user, 'email', '') or '',
            user_name=user.get_full_name() if user is not None and hasattr(user, 'get_full_name') else '',
            ip_address=context.get('ip_address'),
            user_agent=(context.get('user_agent') or '')[:255],
            request_path=context.get('request_path', ''),
        )

    except Exception as e:
        logger.error(f"Error in activity logging for {action}: {e}", exc_info=True)
