from rest_framework import viewsets, status, filters
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db.models import Q
from coreapp.exceptions import NotFoundError
from vehicleapp.models import Vehicle
from .models import Booking, PaymentTransaction, DepositRefund
from .serializer import (
    BookingSerializer,
    BookingCreateSerializer,
    AvailabilityQuerySerializer,
    StatusUpdateSerializer,
    TripRecordSerializer,
    ExtendSerializer,
    PaymentTransactionSerializer,
    PaymentCallbackSerializer,
    DepositRefundSerializer,
    DepositRefundStatusSerializer,
)
from .availability import AvailabilityChecker
from .cancellation import cancel_booking
from .deposits import update_deposit_refund_status
from .lifecycle import BookingService
from .trips import TripService


def get_vehicle(vehicle_id):
    try:
        return Vehicle.objects.select_related('category').get(id=vehicle_id)
    except Vehicle.DoesNotExist:
        raise NotFoundError('Vehicle not found', code='vehicle_not_found')


class BookingViewSet(viewsets.ModelViewSet):
    """
    Handles vehicle bookings.
    - Renters create, pay, extend and cancel bookings
    - Owners check renters in and out and override statuses
    """
    queryset = Booking.objects.all()
    serializer_class = BookingSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [filters.OrderingFilter]
    ordering_fields = ['pickup_datetime', 'created_at', 'total_amount']
    ordering = ['-created_at']
    http_method_names = ['get', 'post', 'head', 'options']

    def get_queryset(self):
        """Filter bookings based on user role"""
        user = self.request.user
        bookings = Booking.objects.select_related('vehicle', 'renter', 'owner')
        if user.is_admin:
            return bookings
        # Everyone else sees bookings they rent, own or drive
        return bookings.filter(Q(renter=user) | Q(owner=user) | Q(driver=user))

    def create(self, request, *args, **kwargs):
        """Create a new booking in pending_payment"""
        serializer = BookingCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        booking = BookingService().create_booking(
            request.user,
            get_vehicle(data['vehicle']),
            data['pickup_datetime'],
            data['return_datetime'],
            with_driver=data['with_driver'],
            driver_id=data.get('driver_id'),
            insurance_plan_id=data.get('insurance_plan_id'),
            protection_plan_id=data.get('protection_plan_id'),
            promo_code=data.get('promo_code'),
            payment_method=data.get('payment_method'),
            pickup_location=data.get('pickup_location'),
            return_location=data.get('return_location'),
        )

        response = BookingSerializer(booking).data
        response['message'] = 'Booking created successfully'
        return Response(response, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['post'])
    def calculate_total(self, request):
        """Price a booking without creating it"""
        serializer = BookingCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        breakdown = BookingService().pricing.quote(
            get_vehicle(data['vehicle']),
            data['pickup_datetime'],
            data['return_datetime'],
            with_driver=data['with_driver'],
            driver_id=data.get('driver_id'),
            insurance_plan_id=data.get('insurance_plan_id'),
            protection_plan_id=data.get('protection_plan_id'),
            promo_code=data.get('promo_code'),
            renter=request.user,
        )
        return Response(breakdown.as_dict())

    @action(detail=False, methods=['get'])
    def check_availability(self, request):
        """Check vehicle availability for a window"""
        serializer = AvailabilityQuerySerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        vehicle = get_vehicle(data['vehicle_id'])
        result = AvailabilityChecker().check(vehicle, data['pickup_datetime'], data['return_datetime'])

        return Response({
            'vehicle_id': vehicle.id,
            'pickup_datetime': data['pickup_datetime'],
            'return_datetime': data['return_datetime'],
            'available': result.available,
            'reason': result.reason or None,
            'conflict': result.conflict_window(),
            'daily_rate': vehicle.resolved_daily_rate()
        })

    @action(detail=True, methods=['post'])
    def pay(self, request, pk=None):
        """Open a pending payment transaction for the booking total"""
        booking = self.get_object()
        txn = BookingService().initiate_payment(booking, request.user)
        return Response(PaymentTransactionSerializer(txn).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def update_status(self, request, pk=None):
        """Set any valid status - Only for the owner or admin"""
        booking = self.get_object()
        serializer = StatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        booking = BookingService().update_status(booking, request.user, serializer.validated_data['status'])

        return Response(
            {
                'message': f'Booking status updated to {booking.status}',
                'status': booking.status
            },
            status=status.HTTP_200_OK
        )

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        """Cancel a booking and work out the refund"""
        booking = self.get_object()
        reason = request.data.get('reason', 'No reason provided')

        outcome = cancel_booking(booking, request.user, reason=reason)

        response = outcome.as_dict()
        response['message'] = 'Booking cancelled'
        return Response(response, status=status.HTTP_200_OK)

    @action(detail=True, methods=['post'])
    def start_trip(self, request, pk=None):
        """Record the pre-trip check-in - Only for the owner or admin"""
        booking = self.get_object()
        serializer = TripRecordSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        booking = TripService().start_trip(
            booking,
            request.user,
            data['odometer'],
            data['fuel_level'],
            notes=data['notes'],
            photo_urls=data['photo_urls'],
        )

        response = BookingSerializer(booking).data
        response['message'] = 'Trip started successfully'
        return Response(response, status=status.HTTP_200_OK)

    @action(detail=True, methods=['post'])
    def complete_trip(self, request, pk=None):
        """Record the check-out and settle the trip - Only for the owner or admin"""
        booking = self.get_object()
        serializer = TripRecordSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        booking = TripService().complete_trip(
            booking,
            request.user,
            data['odometer'],
            data['fuel_level'],
            notes=data['notes'],
            photo_urls=data['photo_urls'],
        )

        response = BookingSerializer(booking).data
        response['distance_traveled'] = booking.post_trip_odometer - booking.pre_trip_odometer
        response['message'] = 'Trip completed successfully'
        return Response(response, status=status.HTTP_200_OK)

    @action(detail=True, methods=['post'])
    def extend(self, request, pk=None):
        """Quote an extension of the return time"""
        booking = self.get_object()
        serializer = ExtendSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        quote = BookingService().quote_extension(
            booking, request.user, serializer.validated_data['new_return_datetime'])
        return Response(quote.as_dict())


class PaymentTransactionViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Payment, refund and charge records.
    confirm/fail are driven by the payment provider callback.
    """
    queryset = PaymentTransaction.objects.all()
    serializer_class = PaymentTransactionSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [filters.OrderingFilter]
    ordering_fields = ['created_at', 'amount']
    ordering = ['-created_at']

    def get_queryset(self):
        """Admins see every transaction, users their own"""
        if self.request.user.is_admin:
            return PaymentTransaction.objects.all()
        return PaymentTransaction.objects.filter(
            Q(user=self.request.user) | Q(booking__owner=self.request.user)
        )

    @action(detail=True, methods=['post'])
    def confirm(self, request, pk=None):
        """Mark a transaction completed - Only for admin"""
        if not request.user.is_admin:
            return Response(
                {'error': 'Only admins can confirm payments'},
                status=status.HTTP_403_FORBIDDEN
            )

        txn = self.get_object()
        serializer = PaymentCallbackSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        txn = BookingService().confirm_payment(txn, serializer.validated_data['external_id'])
        return Response(
            {
                'message': 'Payment confirmed',
                'status': txn.status,
                'reference': txn.reference
            },
            status=status.HTTP_200_OK
        )

    @action(detail=True, methods=['post'])
    def fail(self, request, pk=None):
        """Mark a transaction failed - Only for admin"""
        if not request.user.is_admin:
            return Response(
                {'error': 'Only admins can fail payments'},
                status=status.HTTP_403_FORBIDDEN
            )

        txn = self.get_object()
        serializer = PaymentCallbackSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        txn = BookingService().fail_payment(txn, serializer.validated_data['error_message'])
        return Response(
            {
                'message': 'Payment marked as failed',
                'status': txn.status,
                'reference': txn.reference
            },
            status=status.HTTP_200_OK
        )


class DepositRefundViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Deposit refunds created when a booking completes.
    """
    queryset = DepositRefund.objects.all()
    serializer_class = DepositRefundSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [filters.OrderingFilter]
    ordering_fields = ['due_date', 'created_at', 'amount']
    ordering = ['-created_at']

    def get_queryset(self):
        """Filter refunds based on user role"""
        refunds = DepositRefund.objects.select_related('booking')
        if self.request.user.is_admin:
            return refunds
        return refunds.filter(Q(booking__renter=self.request.user) | Q(booking__owner=self.request.user))

    @action(detail=True, methods=['post'])
    def update_status(self, request, pk=None):
        """Move a refund through processing/completed/failed - Only for admin"""
        if not request.user.is_admin:
            return Response(
                {'error': 'Only admins can update deposit refunds'},
                status=status.HTTP_403_FORBIDDEN
            )

        refund = self.get_object()
        serializer = DepositRefundStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        refund = update_deposit_refund_status(
            refund,
            data['status'],
            external_refund_id=data['external_refund_id'],
            error_message=data['error_message'],
        )
        return Response(DepositRefundSerializer(refund).data, status=status.HTTP_200_OK)
