from rest_framework import serializers
from .models import Payout, InstantWithdrawal

class PayoutSerializer(serializers.ModelSerializer):

    class Meta:
        model = Payout
        fields = '__all__'
        read_only_fields = [field.name for field in Payout._meta.fields]

class InstantWithdrawalSerializer(serializers.ModelSerializer):

    class Meta:
        model = InstantWithdrawal
        fields = '__all__'
        read_only_fields = [field.name for field in InstantWithdrawal._meta.fields]

class PayoutRequestSerializer(serializers.Serializer):

    amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)
    method = serializers.ChoiceField(choices=Payout.METHOD_CHOICES, default='momo')
    details = serializers.JSONField(required=False, default=dict)

class PayoutStatusSerializer(serializers.Serializer):

    status = serializers.ChoiceField(choices=Payout.STATUS_CHOICES)
    external_id = serializers.CharField(required=False, allow_blank=True, default='')
    error_message = serializers.CharField(required=False, allow_blank=True, default='')

class EarningsQuerySerializer(serializers.Serializer):

    start = serializers.DateTimeField(required=False)
    end = serializers.DateTimeField(required=False)
