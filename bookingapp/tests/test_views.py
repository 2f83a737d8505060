from datetime import timedelta

import pytest

from bookingapp.models import Booking, PaymentTransaction


@pytest.fixture
def payload(vehicle, window):
    pickup, return_ = window
    return {
        'vehicle': vehicle.pk,
        'pickup_datetime': pickup.isoformat(),
        'return_datetime': return_.isoformat(),
    }


@pytest.mark.django_db
def test_create_booking(client_for, renter, payload):
    response = client_for(renter).post('/api/bookings/', payload, format='json')

    assert response.status_code == 201
    assert response.data['message'] == 'Booking created successfully'
    assert response.data['status'] == 'pending_payment'
    assert response.data['total_amount'] == '990.00'


@pytest.mark.django_db
def test_create_conflict_returns_409(client_for, booking, other_renter, payload):
    response = client_for(other_renter).post('/api/bookings/', payload, format='json')

    assert response.status_code == 409
    assert response.data['code'] == 'vehicle_unavailable'
    assert response.data['details']['conflict']['booking_reference'] == booking.booking_reference


@pytest.mark.django_db
def test_unknown_vehicle_returns_404(client_for, renter, payload):
    payload['vehicle'] = 9999
    response = client_for(renter).post('/api/bookings/', payload, format='json')
    assert response.status_code == 404


@pytest.mark.django_db
def test_calculate_total(client_for, renter, payload):
    response = client_for(renter).post('/api/bookings/calculate_total/', payload, format='json')

    assert response.status_code == 200
    assert response.data['rental_amount'] == '600.00'
    assert response.data['platform_fee'] == '90.00'
    assert response.data['total_amount'] == '990.00'
    assert Booking.objects.count() == 0


@pytest.mark.django_db
def test_no_driver_returns_422(client_for, renter, payload):
    payload['with_driver'] = True
    response = client_for(renter).post('/api/bookings/calculate_total/', payload, format='json')

    assert response.status_code == 422
    assert response.data['code'] == 'no_available_driver'
    assert response.data['retryable'] is False


@pytest.mark.django_db
def test_check_availability(client_for, renter, booking):
    response = client_for(renter).get('/api/bookings/check_availability/', {
        'vehicle_id': booking.vehicle_id,
        'pickup_datetime': booking.pickup_datetime.isoformat(),
        'return_datetime': booking.return_datetime.isoformat(),
    })

    assert response.status_code == 200
    assert response.data['available'] is False
    assert response.data['conflict']['booking_reference'] == booking.booking_reference


@pytest.mark.django_db
def test_bookings_are_scoped_to_participants(client_for, booking, renter, owner, other_renter):
    assert len(client_for(renter).get('/api/bookings/').data) == 1
    assert len(client_for(owner).get('/api/bookings/').data) == 1
    assert len(client_for(other_renter).get('/api/bookings/').data) == 0
    assert client_for(other_renter).get(f'/api/bookings/{booking.pk}/').status_code == 404


@pytest.mark.django_db
def test_payment_flow(client_for, booking, renter, admin_user):
    response = client_for(renter).post(f'/api/bookings/{booking.pk}/pay/')
    assert response.status_code == 201
    txn_id = response.data['id']

    response = client_for(renter).post(f'/api/transactions/{txn_id}/confirm/', {'external_id': 'MOMO-9'})
    assert response.status_code == 403

    response = client_for(admin_user).post(f'/api/transactions/{txn_id}/confirm/', {'external_id': 'MOMO-9'})
    assert response.status_code == 200
    assert response.data['status'] == 'completed'

    booking.refresh_from_db()
    assert booking.status == 'confirmed'
    assert PaymentTransaction.objects.get(pk=txn_id).external_transaction_id == 'MOMO-9'


@pytest.mark.django_db
def test_trip_endpoints(client_for, paid_booking, owner):
    client = client_for(owner)
    response = client.post(f'/api/bookings/{paid_booking.pk}/start_trip/', {'odometer': 1000, 'fuel_level': '1.00'},
                           format='json')
    assert response.status_code == 200
    assert response.data['status'] == 'ongoing'

    response = client.post(f'/api/bookings/{paid_booking.pk}/complete_trip/', {'odometer': 1100, 'fuel_level': '0.75'},
                           format='json')
    assert response.status_code == 200
    assert response.data['status'] == 'completed'
    assert response.data['distance_traveled'] == 100

    response = client.post(f'/api/bookings/{paid_booking.pk}/complete_trip/', {'odometer': 1100, 'fuel_level': '0.75'},
                           format='json')
    assert response.status_code == 409
    assert response.data['code'] == 'already_completed'


@pytest.mark.django_db
def test_renter_cannot_start_trip(client_for, paid_booking, renter):
    response = client_for(renter).post(f'/api/bookings/{paid_booking.pk}/start_trip/',
                                       {'odometer': 1000, 'fuel_level': '1.00'}, format='json')
    assert response.status_code == 403


@pytest.mark.django_db
def test_cancel_endpoint(client_for, booking, renter):
    response = client_for(renter).post(f'/api/bookings/{booking.pk}/cancel/', {'reason': 'Changed plans'})

    assert response.status_code == 200
    assert response.data['status'] == 'cancelled'
    assert response.data['message'] == 'Booking cancelled'


@pytest.mark.django_db
def test_extend_endpoint(client_for, paid_booking, renter):
    new_return = paid_booking.return_datetime + timedelta(days=1)
    response = client_for(renter).post(f'/api/bookings/{paid_booking.pk}/extend/',
                                       {'new_return_datetime': new_return.isoformat()}, format='json')

    assert response.status_code == 200
    assert response.data['delta_amount'] == '230.00'


@pytest.mark.django_db
def test_update_status_endpoint(client_for, paid_booking, owner):
    response = client_for(owner).post(f'/api/bookings/{paid_booking.pk}/update_status/', {'status': 'no_show'})

    assert response.status_code == 200
    assert response.data['status'] == 'no_show'


@pytest.mark.django_db
def test_deposit_refund_admin_update(client_for, paid_booking, owner, renter, admin_user):
    client_for(owner).post(f'/api/bookings/{paid_booking.pk}/update_status/', {'status': 'completed'})
    refund_id = paid_booking.deposit_refund.pk

    response = client_for(renter).get('/api/deposit-refunds/')
    assert response.status_code == 200
    assert response.data[0]['booking_reference'] == paid_booking.booking_reference

    response = client_for(renter).post(f'/api/deposit-refunds/{refund_id}/update_status/', {'status': 'completed'})
    assert response.status_code == 403

    response = client_for(admin_user).post(f'/api/deposit-refunds/{refund_id}/update_status/', {'status': 'completed'})
    assert response.status_code == 200
    assert response.data['status'] == 'completed'
