from datetime import timedelta

import pytest

from notificationapp.models import NotificationJob
from notificationapp.scheduler import NotificationScheduler


@pytest.mark.django_db
def test_immediate_job(renter):
    job = NotificationScheduler().schedule_job(renter, 'trip_started', metadata={'odometer': 1000})

    assert job.send_immediately is True
    assert job.status == 'pending'
    assert job.channels == ['email', 'inapp']
    assert job.metadata == {'odometer': 1000}


@pytest.mark.django_db
def test_scheduled_job(renter, now):
    job = NotificationScheduler().schedule_job(renter, 'pickup_reminder', scheduled_at=now + timedelta(days=1))

    assert job.send_immediately is False
    assert job.scheduled_at == now + timedelta(days=1)


def test_missing_user_is_skipped():
    assert NotificationScheduler().schedule_job(None, 'trip_started') is None


@pytest.mark.django_db
def test_cancel_pending_jobs_leaves_sent_ones(booking, renter):
    scheduler = NotificationScheduler()
    scheduler.schedule_job(renter, 'pickup_reminder', booking=booking)
    sent = scheduler.schedule_job(renter, 'return_reminder', booking=booking)
    NotificationJob.objects.filter(pk=sent.pk).update(status='sent')
    other = scheduler.schedule_job(renter, 'trip_started', booking=booking)

    assert scheduler.cancel_pending_jobs(booking, ['pickup_reminder', 'return_reminder']) == 1

    sent.refresh_from_db()
    other.refresh_from_db()
    assert sent.status == 'sent'
    assert other.status == 'pending'
