from rest_framework import serializers
from .models import Booking, PaymentTransaction, BookingCharge, DepositRefund

class BookingChargeSerializer(serializers.ModelSerializer):

    class Meta:
        model = BookingCharge
        fields = [
                'id',
                'charge_type',
                'amount',
                'currency',
                'label',
                'notes',
                'status',
                'settled_at',
                'payment_transaction',
                'created_at'
            ]

class BookingSerializer(serializers.ModelSerializer):

    charges = BookingChargeSerializer(many=True, read_only=True)

    class Meta:
        model = Booking
        fields = '__all__'
        read_only_fields = [field.name for field in Booking._meta.fields]

class BookingCreateSerializer(serializers.Serializer):

    vehicle = serializers.IntegerField()
    pickup_datetime = serializers.DateTimeField()
    return_datetime = serializers.DateTimeField()
    with_driver = serializers.BooleanField(default=False)
    driver_id = serializers.IntegerField(required=False, allow_null=True)
    insurance_plan_id = serializers.IntegerField(required=False, allow_null=True)
    protection_plan_id = serializers.IntegerField(required=False, allow_null=True)
    promo_code = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    payment_method = serializers.CharField(required=False, default='momo')
    pickup_location = serializers.JSONField(required=False, allow_null=True)
    return_location = serializers.JSONField(required=False, allow_null=True)

class AvailabilityQuerySerializer(serializers.Serializer):

    vehicle_id = serializers.IntegerField()
    pickup_datetime = serializers.DateTimeField()
    return_datetime = serializers.DateTimeField()

class StatusUpdateSerializer(serializers.Serializer):

    status = serializers.CharField()

class TripRecordSerializer(serializers.Serializer):

    odometer = serializers.IntegerField()
    fuel_level = serializers.DecimalField(max_digits=4, decimal_places=2)
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    photo_urls = serializers.ListField(child=serializers.URLField(), required=False, default=list)

class ExtendSerializer(serializers.Serializer):

    new_return_datetime = serializers.DateTimeField()

class PaymentTransactionSerializer(serializers.ModelSerializer):

    class Meta:
        model = PaymentTransaction
        fields = '__all__'
        read_only_fields = [field.name for field in PaymentTransaction._meta.fields]

class PaymentCallbackSerializer(serializers.Serializer):

    external_id = serializers.CharField(required=False, allow_blank=True, default='')
    error_message = serializers.CharField(required=False, allow_blank=True, default='')

class DepositRefundSerializer(serializers.ModelSerializer):

    booking_reference = serializers.CharField(source='booking.booking_reference', read_only=True)

    class Meta:
        model = DepositRefund
        fields = '__all__'
        read_only_fields = [field.name for field in DepositRefund._meta.fields]

class DepositRefundStatusSerializer(serializers.Serializer):

    status = serializers.ChoiceField(choices=DepositRefund.STATUS_CHOICES)
    external_refund_id = serializers.CharField(required=False, allow_blank=True, default='')
    error_message = serializers.CharField(required=False, allow_blank=True, default='')
