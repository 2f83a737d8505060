import uuid

from coreapp.money import quantize

from .models import PaymentTransaction

REFERENCE_PREFIXES = {
    'payment': 'PAY',
    'refund': 'RFD',
    'payout': 'PYT',
    'deposit': 'DEP',
}


def new_reference(prefix):
    return f"{prefix}-{uuid.uuid4().hex[:12].upper()}"


def record_transaction(booking, transaction_type, amount, metadata=None, user=None):
    """Append a pending transaction for the booking's renter"""
    return PaymentTransaction.objects.create(
        booking=booking,
        user=user or booking.renter,
        transaction_type=transaction_type,
        status='pending',
        amount=quantize(amount),
        currency=booking.currency,
        method=booking.payment_method,
        reference=new_reference(REFERENCE_PREFIXES[transaction_type]),
        metadata=metadata or {},
    )
