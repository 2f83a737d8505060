from rest_framework import viewsets, status, filters
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from .models import Payout, InstantWithdrawal
from .serializer import (
    PayoutSerializer,
    InstantWithdrawalSerializer,
    PayoutRequestSerializer,
    PayoutStatusSerializer,
    EarningsQuerySerializer,
)
from .earnings import PayoutService, owner_balance, period_earnings


class PayoutViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Owner earnings and payouts.
    - Owners see their balance and request payouts or instant withdrawals
    - Admins move payouts through processing/completed/failed
    """
    queryset = Payout.objects.all()
    serializer_class = PayoutSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [filters.OrderingFilter]
    ordering_fields = ['created_at', 'amount']
    ordering = ['-created_at']

    def get_queryset(self):
        """Admins see every payout, owners their own"""
        if self.request.user.is_admin:
            return Payout.objects.all()
        return Payout.objects.filter(owner=self.request.user)

    @action(detail=False, methods=['get'])
    def earnings(self, request):
        """Current balance, plus a period breakdown when start and end are given"""
        if request.user.role != 'owner':
            return Response(
                {'error': 'Only owners have earnings'},
                status=status.HTTP_403_FORBIDDEN
            )

        serializer = EarningsQuerySerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        response = owner_balance(request.user).as_dict()
        if data.get('start') and data.get('end'):
            response['period'] = period_earnings(request.user, data['start'], data['end']).as_dict()
        return Response(response)

    @action(detail=False, methods=['post'])
    def request_payout(self, request):
        """Request a payout of the available balance"""
        serializer = PayoutRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        payout = PayoutService().request_payout(
            request.user, amount=data.get('amount'), method=data['method'], details=data['details'])

        response = PayoutSerializer(payout).data
        response['message'] = 'Payout requested successfully'
        return Response(response, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['post'])
    def request_withdrawal(self, request):
        """Request an instant withdrawal, charged the withdrawal fee"""
        serializer = PayoutRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        withdrawal = PayoutService().request_instant_withdrawal(
            request.user, data.get('amount'), method=data['method'], details=data['details'])

        response = InstantWithdrawalSerializer(withdrawal).data
        response['message'] = 'Instant withdrawal request submitted successfully'
        return Response(response, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def update_status(self, request, pk=None):
        """Update payout status - Only for admin"""
        if not request.user.is_admin:
            return Response(
                {'error': 'Only admins can update payouts'},
                status=status.HTTP_403_FORBIDDEN
            )

        payout = self.get_object()
        serializer = PayoutStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        payout = PayoutService().update_payout_status(
            payout, data['status'], external_id=data['external_id'], error_message=data['error_message'])
        return Response(PayoutSerializer(payout).data, status=status.HTTP_200_OK)


class InstantWithdrawalViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Instant withdrawals requested by owners.
    """
    queryset = InstantWithdrawal.objects.all()
    serializer_class = InstantWithdrawalSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [filters.OrderingFilter]
    ordering_fields = ['created_at', 'amount']
    ordering = ['-created_at']

    def get_queryset(self):
        """Admins see every withdrawal, owners their own"""
        if self.request.user.is_admin:
            return InstantWithdrawal.objects.all()
        return InstantWithdrawal.objects.filter(owner=self.request.user)

    @action(detail=True, methods=['post'])
    def update_status(self, request, pk=None):
        """Update withdrawal status - Only for admin"""
        if not request.user.is_admin:
            return Response(
                {'error': 'Only admins can update withdrawals'},
                status=status.HTTP_403_FORBIDDEN
            )

        withdrawal = self.get_object()
        serializer = PayoutStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        withdrawal = PayoutService().update_withdrawal_status(
            withdrawal, data['status'], external_id=data['external_id'], error_message=data['error_message'])
        return Response(InstantWithdrawalSerializer(withdrawal).data, status=status.HTTP_200_OK)
