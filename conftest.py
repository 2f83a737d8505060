from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone
from rest_framework.test import APIClient

from accountapp.models import User, DriverProfile
from bookingapp.lifecycle import BookingService
from vehicleapp.models import CarCategory, City, Vehicle, InsurancePlan, ProtectionPlan


@pytest.fixture
def now():
    return timezone.now().replace(microsecond=0)


@pytest.fixture
def renter(db):
    return User.objects.create_user(username='ama', password='secret', role='renter')


@pytest.fixture
def other_renter(db):
    return User.objects.create_user(username='kofi', password='secret', role='renter')


@pytest.fixture
def owner(db):
    return User.objects.create_user(username='yaw', password='secret', role='owner')


@pytest.fixture
def admin_user(db):
    return User.objects.create_user(username='admin', password='secret', role='admin')


@pytest.fixture
def driver(db):
    user = User.objects.create_user(username='kwame', password='secret', role='driver')
    return DriverProfile.objects.create(
        user=user,
        full_name='Kwame Mensah',
        verification_status='verified',
        available=True,
        daily_rate=Decimal('50.00'),
        average_rating=Decimal('4.50'),
    )


@pytest.fixture
def category(db):
    return CarCategory.objects.create(
        name='Saloon',
        default_daily_rate=Decimal('200.00'),
        default_deposit_amount=Decimal('300.00'),
    )


@pytest.fixture
def city(db):
    return City.objects.create(name='Accra')


@pytest.fixture
def vehicle(owner, category, city):
    return Vehicle.objects.create(
        owner=owner,
        category=category,
        city=city,
        plate_number='GR-1234-24',
        make='Toyota',
        model='Corolla',
        year=2021,
        status='active',
    )


@pytest.fixture
def insurance_plan(db):
    return InsurancePlan.objects.create(name='Basic cover', daily_price=Decimal('20.00'))


@pytest.fixture
def protection_plan(db):
    return ProtectionPlan.objects.create(
        code='STANDARD',
        name='Standard protection',
        pricing_mode='per_day',
        daily_price=Decimal('30.00'),
        min_fee=Decimal('40.00'),
        max_fee=Decimal('150.00'),
    )


@pytest.fixture
def window(now):
    """A three day rental starting tomorrow"""
    pickup = now + timedelta(days=1)
    return pickup, pickup + timedelta(days=3)


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def client_for(api_client):
    def authenticate(user):
        api_client.force_authenticate(user=user)
        return api_client
    return authenticate


@pytest.fixture
def booking(renter, vehicle, window, now):
    pickup, return_ = window
    return BookingService().create_booking(renter, vehicle, pickup, return_, now=now)


@pytest.fixture
def paid_booking(booking, renter, now):
    service = BookingService()
    txn = service.initiate_payment(booking, renter)
    service.confirm_payment(txn, external_id='MOMO-1', now=now)
    booking.refresh_from_db()
    return booking
