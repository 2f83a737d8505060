from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import *

router = DefaultRouter()
router.register(r'bookings', BookingViewSet, basename='booking')
router.register(r'transactions', PaymentTransactionViewSet, basename='paymenttransaction')
router.register(r'deposit-refunds', DepositRefundViewSet, basename='depositrefund')

urlpatterns = [
    path('', include(router.urls)),
]
