"""
Writes NotificationJob rows for an external delivery worker.

Scheduling is best-effort: each job is written inside its own savepoint so a
failure here never rolls back the booking transition that requested it.
"""

import logging

from django.db import DatabaseError, transaction

from .models import NotificationJob

logger = logging.getLogger(__name__)

DEFAULT_CHANNELS = ['email', 'inapp']


class NotificationScheduler:

    def schedule_job(self, target_user, template, scheduled_at=None, metadata=None,
                     booking=None, subject='', message='', channels=None):
        if target_user is None:
            return None
        try:
            with transaction.atomic():
                job = NotificationJob.objects.create(
                    target_user=target_user,
                    booking=booking,
                    template_name=template,
                    subject=subject,
                    message=message,
                    channels=list(channels or DEFAULT_CHANNELS),
                    metadata=dict(metadata or {}),
                    scheduled_at=scheduled_at,
                    send_immediately=scheduled_at is None,
                )
        except DatabaseError:
            logger.exception("Failed to schedule %s notification for user %s", template, target_user.pk)
            return None
        return job

    def cancel_pending_jobs(self, booking, template_names):
        """Cancel not-yet-sent jobs of the given templates; returns the number cancelled"""
        try:
            with transaction.atomic():
                return NotificationJob.objects.filter(
                    booking=booking,
                    template_name__in=list(template_names),
                    status__in=['pending', 'queued'],
                ).update(status='cancelled')
        except DatabaseError:
            logger.exception("Failed to cancel %s jobs for booking %s", template_names, booking.pk)
            return 0
