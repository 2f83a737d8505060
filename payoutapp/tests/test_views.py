from decimal import Decimal

import pytest

from bookingapp.models import Booking


@pytest.fixture
def earning_owner(booking, owner):
    Booking.objects.filter(pk=booking.pk).update(status='completed', payment_status='paid')
    return owner


@pytest.mark.django_db
def test_earnings(client_for, earning_owner):
    response = client_for(earning_owner).get('/api/payouts/earnings/')

    assert response.status_code == 200
    assert response.data['available_balance'] == '510.00'
    assert 'period' not in response.data


@pytest.mark.django_db
def test_earnings_for_renter_forbidden(client_for, renter):
    assert client_for(renter).get('/api/payouts/earnings/').status_code == 403


@pytest.mark.django_db
def test_request_payout_and_admin_update(client_for, earning_owner, admin_user):
    response = client_for(earning_owner).post('/api/payouts/request_payout/', {'amount': '200.00'}, format='json')
    assert response.status_code == 201
    assert response.data['amount'] == '200.00'
    payout_id = response.data['id']

    response = client_for(earning_owner).post(f'/api/payouts/{payout_id}/update_status/', {'status': 'completed'})
    assert response.status_code == 403

    response = client_for(admin_user).post(f'/api/payouts/{payout_id}/update_status/', {'status': 'completed'})
    assert response.status_code == 200
    assert response.data['status'] == 'completed'


@pytest.mark.django_db
def test_overdrawn_payout(client_for, earning_owner):
    response = client_for(earning_owner).post('/api/payouts/request_payout/', {'amount': '9000.00'}, format='json')

    assert response.status_code == 400
    assert response.data['code'] == 'insufficient_balance'
    assert response.data['details']['available_balance'] == '510.00'


@pytest.mark.django_db
def test_instant_withdrawal(client_for, earning_owner):
    response = client_for(earning_owner).post('/api/payouts/request_withdrawal/', {'amount': '100.00'}, format='json')

    assert response.status_code == 201
    assert response.data['net_amount'] == '97.00'

    listed = client_for(earning_owner).get('/api/withdrawals/')
    assert len(listed.data) == 1
    assert Decimal(listed.data[0]['fee_amount']) == Decimal('3.00')
