from datetime import timedelta

import pytest

from bookingapp.availability import AvailabilityChecker
from bookingapp.models import Booking


@pytest.mark.django_db
def test_free_vehicle_is_available(vehicle, window):
    assert AvailabilityChecker().check(vehicle, *window).available


@pytest.mark.django_db
def test_inactive_vehicle(vehicle, window):
    vehicle.status = 'inactive'
    result = AvailabilityChecker().check(vehicle, *window)
    assert not result.available
    assert result.conflict is None


@pytest.mark.django_db
def test_turnaround_buffer_blocks_back_to_back(booking):
    vehicle = booking.vehicle
    checker = AvailabilityChecker()

    # Starts two hours after the existing return, inside the four hour buffer
    pickup = booking.return_datetime + timedelta(hours=2)
    result = checker.check(vehicle, pickup, pickup + timedelta(days=1))
    assert not result.available
    assert result.conflict == booking
    assert result.conflict_window()['booking_reference'] == booking.booking_reference

    pickup = booking.return_datetime + timedelta(hours=4)
    assert checker.check(vehicle, pickup, pickup + timedelta(days=1)).available


@pytest.mark.django_db
def test_cancelled_bookings_do_not_block(booking):
    Booking.objects.filter(pk=booking.pk).update(status='cancelled')
    assert AvailabilityChecker().check(booking.vehicle, booking.pickup_datetime, booking.return_datetime).available


@pytest.mark.django_db
def test_excluding_own_booking(booking):
    result = AvailabilityChecker().check(
        booking.vehicle, booking.pickup_datetime, booking.return_datetime + timedelta(days=1),
        exclude_booking_id=booking.pk,
    )
    assert result.available


@pytest.mark.django_db
def test_available_vehicle_ids(booking, vehicle):
    checker = AvailabilityChecker()
    assert checker.available_vehicle_ids(booking.pickup_datetime, booking.return_datetime) == []

    later = booking.return_datetime + timedelta(days=2)
    assert checker.available_vehicle_ids(later, later + timedelta(days=1)) == [vehicle.pk]
