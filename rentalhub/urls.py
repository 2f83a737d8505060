from django.urls import path, include

urlpatterns = [
    path('api/', include('bookingapp.urls')),
    path('api/', include('payoutapp.urls')),
]
