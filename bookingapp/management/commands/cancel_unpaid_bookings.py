from django.core.management.base import BaseCommand

from bookingapp.lifecycle import BookingService


class Command(BaseCommand):
    help = 'Cancel bookings that are still unpaid after the payment timeout'

    def handle(self, *args, **options):
        cancelled = BookingService().cancel_expired_unpaid_bookings()
        for booking in cancelled:
            self.stdout.write(f"Cancelled {booking.booking_reference}")
        self.stdout.write(self.style.SUCCESS(f"{len(cancelled)} unpaid booking(s) cancelled"))
