import logging

from django.db import DatabaseError, transaction

from .models import ActivityLog

logger = logging.getLogger(__name__)


def log_activity(user, action, entity, description, entity_id=None, metadata=None):
    """Record an audit entry. Never raises; a failed write is only logged."""
    if user is not None and not getattr(user, 'is_authenticated', False):
        user = None
    try:
        with transaction.atomic():
            return ActivityLog.objects.create(
                user=user,
                action=action,
                entity=entity,
                entity_id=str(entity_id) if entity_id is not None else '',
                description=description,
                metadata=metadata or {},
            )
    except DatabaseError:
        logger.exception('Failed to log activity: %s %s %s', action, entity, entity_id)
        return None
