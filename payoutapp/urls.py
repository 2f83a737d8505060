from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import *

router = DefaultRouter()
router.register(r'payouts', PayoutViewSet, basename='payout')
router.register(r'withdrawals', InstantWithdrawalViewSet, basename='instantwithdrawal')

urlpatterns = [
    path('', include(router.urls)),
]
