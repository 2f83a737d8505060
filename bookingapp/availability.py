"""
Vehicle availability with a turnaround buffer.

Two windows conflict when

    existing.pickup < candidate.return + buffer
    and existing.return > candidate.pickup - buffer

so back-to-back bookings always leave `buffer` hours for handover.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from coreapp.config import ConfigService, TURNAROUND_BUFFER_HOURS
from vehicleapp.models import Vehicle

from .models import Booking

logger = logging.getLogger(__name__)

NON_BLOCKING_STATUSES = ('cancelled', 'completed')


@dataclass
class AvailabilityResult:
    available: bool
    reason: str = ''
    conflict: Optional[Booking] = None

    def conflict_window(self):
        if self.conflict is None:
            return None
        return {
            'booking_reference': self.conflict.booking_reference,
            'pickup_datetime': self.conflict.pickup_datetime.isoformat(),
            'return_datetime': self.conflict.return_datetime.isoformat(),
        }


class AvailabilityChecker:

    def __init__(self, config=None):
        self.config = config or ConfigService()

    def buffer(self):
        return timedelta(hours=self.config.get_int(TURNAROUND_BUFFER_HOURS))

    def conflicting_bookings(self, vehicle_id, pickup, return_, exclude_booking_id=None):
        buffer = self.buffer()
        bookings = Booking.objects.filter(
            vehicle_id=vehicle_id,
            pickup_datetime__lt=return_ + buffer,
            return_datetime__gt=pickup - buffer,
        ).exclude(status__in=NON_BLOCKING_STATUSES)
        if exclude_booking_id:
            bookings = bookings.exclude(pk=exclude_booking_id)
        return bookings.order_by('pickup_datetime')

    def check(self, vehicle, pickup, return_, exclude_booking_id=None):
        if not vehicle.is_bookable:
            return AvailabilityResult(False, 'Vehicle is not available for booking')

        if vehicle.available_from and pickup < vehicle.available_from:
            return AvailabilityResult(False, 'Vehicle is not available before %s' % vehicle.available_from.isoformat())
        if vehicle.available_until and return_ > vehicle.available_until:
            return AvailabilityResult(False, 'Vehicle is not available after %s' % vehicle.available_until.isoformat())

        conflict = self.conflicting_bookings(vehicle.pk, pickup, return_, exclude_booking_id).first()
        if conflict is not None:
            logger.debug("Vehicle %s conflicts with booking %s", vehicle.pk, conflict.booking_reference)
            return AvailabilityResult(False, 'Vehicle is already booked for the selected dates', conflict)

        return AvailabilityResult(True)

    def available_vehicle_ids(self, pickup, return_, vehicle_ids=None):
        """Ids of active vehicles that are free for the whole window"""
        vehicles = Vehicle.objects.filter(status='active', deleted_at__isnull=True)
        if vehicle_ids is not None:
            vehicles = vehicles.filter(pk__in=list(vehicle_ids))
        vehicles = vehicles.exclude(available_from__gt=pickup).exclude(available_until__lt=return_)

        buffer = self.buffer()
        busy = Booking.objects.filter(
            pickup_datetime__lt=return_ + buffer,
            return_datetime__gt=pickup - buffer,
        ).exclude(status__in=NON_BLOCKING_STATUSES).values_list('vehicle_id', flat=True)

        return list(vehicles.exclude(pk__in=busy).order_by('pk').values_list('pk', flat=True))
