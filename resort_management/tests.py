from django.test import TestCase, TransactionTestCase, override_settings
from django.db import connection, transaction, DatabaseError, IntegrityError
from django.conf import settings
from django.utils import timezone
from rest_framework.test import APITestCase
from rest_framework import status
from rest_framework import serializers
from datetime import date, timedelta
from decimal import Decimal
from types import SimpleNamespace
from unittest import mock, skipUnless
from concurrent.futures import ThreadPoolExecutor, as_completed

from .authentication import create_access_token
from .models import Resort, RoomType, Room, RoomDetail, User, Booking, Payment, Discount
from .serializers import PaymentCreateSerializer


class ResortFixturesMixin:
    """Common resort, room and user rows for the API tests"""

    def setUp(self):
        self.resort = Resort.objects.create(name="Sunset Bay")
        self.room_type = RoomType.objects.create(name="Deluxe", price_per_night=Decimal("120.00"))
        self.room = Room.objects.create(resort=self.resort, room_type=self.room_type, location="A-101")
        RoomDetail.objects.create(room=self.room, description="Ocean view")

        self.guest = User.objects.create(username="guest", email="guest@example.com", full_name="Guest One")
        self.other_guest = User.objects.create(username="other", email="other@example.com")
        self.admin = User.objects.create(username="admin", email="admin@example.com", role=User.Role.ADMIN)

        self.client.force_authenticate(user=self.guest)

    def make_booking(self, user=None, booking_status=Booking.Status.PENDING, nightly_rate=Decimal("100.00"),
                     nights=2):
        check_in = date.today() + timedelta(days=7)
        return Booking.objects.create(
            user=user or self.guest,
            room=self.room,
            check_in=check_in,
            check_out=check_in + timedelta(days=nights),
            nightly_rate=nightly_rate,
            total_amount=nightly_rate * nights,
            status=booking_status,
        )

    def make_discount(self, code="WELCOME10", discount_type=Discount.Type.PERCENT, value=Decimal("10"),
                      usage_limit=5, usage_used=0, **extra):
        now = timezone.now()
        defaults = dict(valid_from=now - timedelta(days=1), valid_until=now + timedelta(days=1))
        defaults.update(extra)
        return Discount.objects.create(code=code, name=code, discount_type=discount_type, value=value,
                                       usage_limit=usage_limit, usage_used=usage_used, **defaults)

    def make_completed_payment(self, booking, amount=Decimal("200.00")):
        return Payment.objects.create(
            booking=booking,
            user=booking.user,
            payment_method=Payment.Method.CARD,
            amount=amount,
            status=Payment.Status.COMPLETED,
            paid_at=timezone.now(),
        )


class BookingQuoteTestCase(TestCase):
    """Nights and totals"""

    def test_total_is_nights_times_rate(self):
        scenarios = [
            (date(2025, 12, 1), date(2025, 12, 3), Decimal("100"), 2, Decimal("200.00")),
            (date(2025, 12, 1), date(2025, 12, 2), Decimal("99.99"), 1, Decimal("99.99")),
            (date(2025, 12, 30), date(2026, 1, 4), Decimal("80.50"), 5, Decimal("402.50")),
        ]
        for check_in, check_out, rate, nights, total in scenarios:
            with self.subTest(check_in=check_in, check_out=check_out):
                self.assertEqual(Booking.quote(check_in, check_out, rate), (nights, total))

    def test_same_day_stay_counts_as_one_night(self):
        day = date(2025, 12, 1)
        self.assertEqual(Booking.nights_between(day, day), 1)
        self.assertEqual(Booking.quote(day, day, Decimal("150")), (1, Decimal("150.00")))

    def test_allowed_transitions(self):
        booking = Booking(status=Booking.Status.PENDING)
        self.assertTrue(booking.can_transition_to(Booking.Status.CONFIRMED))
        self.assertTrue(booking.can_transition_to(Booking.Status.CANCELLED))
        self.assertFalse(booking.can_transition_to(Booking.Status.CHECKED_IN))

        booking.status = Booking.Status.CHECKED_IN
        self.assertTrue(booking.can_transition_to(Booking.Status.CHECKED_OUT))
        self.assertFalse(booking.can_transition_to(Booking.Status.CANCELLED))

        booking.status = Booking.Status.CANCELLED
        self.assertFalse(booking.can_transition_to(Booking.Status.CONFIRMED))


class DiscountModelTestCase(ResortFixturesMixin, APITestCase):
    """Discount arithmetic and redeemability"""

    def test_percent_discount(self):
        discount = self.make_discount(value=Decimal("10"))
        self.assertEqual(discount.apply(Decimal("200")), Decimal("180.00"))
        self.assertEqual(discount.apply(Decimal("99.99")), Decimal("89.99"))

    def test_fixed_discount_never_goes_below_zero(self):
        discount = self.make_discount(code="SAVE50", discount_type=Discount.Type.FIXED, value=Decimal("50"))
        self.assertEqual(discount.apply(Decimal("200")), Decimal("150.00"))
        self.assertEqual(discount.apply(Decimal("30")), Decimal("0.00"))

    def test_redeemable_respects_status_and_window(self):
        now = timezone.now()
        active = self.make_discount(code="ACTIVE")
        self.make_discount(code="INACTIVE", status=Discount.Status.INACTIVE)
        self.make_discount(code="EXPIRED", valid_from=now - timedelta(days=10), valid_until=now - timedelta(days=1))
        self.make_discount(code="FUTURE", valid_from=now + timedelta(days=1), valid_until=now + timedelta(days=10))

        self.assertEqual(list(Discount.objects.redeemable()), [active])

    def test_exhaustion(self):
        self.assertTrue(self.make_discount(code="USEDUP", usage_limit=2, usage_used=2).is_exhausted)
        self.assertFalse(self.make_discount(code="UNLIMITED", usage_limit=None, usage_used=500).is_exhausted)

    def test_usage_cannot_exceed_limit_in_database(self):
        discount = self.make_discount(usage_limit=1, usage_used=1)
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                discount.redeem()


class BookingCreationTestCase(ResortFixturesMixin, APITestCase):
    """POST /api/bookings"""

    def test_create_booking_computes_total(self):
        response = self.client.post('/api/bookings', {
            'roomId': self.room.id,
            'checkIn': '01/12/2025',
            'checkOut': '03/12/2025',
            'pricePerNight': 100,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['booking']['total_amount'], Decimal("200"))

        booking = Booking.objects.get(pk=response.data['booking']['id'])
        self.assertEqual(booking.booking_code, response.data['booking']['booking_code'])
        self.assertEqual(booking.user, self.guest)
        self.assertEqual(booking.status, Booking.Status.PENDING)
        self.assertEqual(booking.check_in, date(2025, 12, 1))
        self.assertEqual(booking.check_out, date(2025, 12, 3))
        self.assertEqual(booking.nights, 2)

    def test_iso_dates_are_accepted(self):
        response = self.client.post('/api/bookings', {
            'roomId': self.room.id,
            'checkIn': '2025-12-01',
            'checkOut': '2025-12-04',
            'pricePerNight': '80.50',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['booking']['total_amount'], Decimal("241.50"))

    def test_missing_fields_are_rejected(self):
        full = {'roomId': self.room.id, 'checkIn': '01/12/2025', 'checkOut': '03/12/2025', 'pricePerNight': 100}
        for missing in full:
            with self.subTest(missing=missing):
                data = {k: v for k, v in full.items() if k != missing}
                response = self.client.post('/api/bookings', data, format='json')
                self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
                self.assertIn(missing, response.data['error'])
        self.assertFalse(Booking.objects.exists())

    def test_check_out_before_check_in_is_rejected(self):
        response = self.client.post('/api/bookings', {
            'roomId': self.room.id,
            'checkIn': '05/12/2025',
            'checkOut': '03/12/2025',
            'pricePerNight': 100,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('checkOut', response.data['error'])

    def test_unknown_room_is_rejected(self):
        response = self.client.post('/api/bookings', {
            'roomId': 9999,
            'checkIn': '01/12/2025',
            'checkOut': '03/12/2025',
            'pricePerNight': 100,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_unauthenticated_request_is_rejected(self):
        self.client.force_authenticate(user=None)
        response = self.client.post('/api/bookings', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_database_failure_returns_500(self):
        with mock.patch.object(Booking.objects, 'create', side_effect=DatabaseError('connection lost')):
            response = self.client.post('/api/bookings', {
                'roomId': self.room.id,
                'checkIn': '01/12/2025',
                'checkOut': '03/12/2025',
                'pricePerNight': 100,
            }, format='json')

        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data, {'error': 'Internal Server Error'})


class PaymentCreationTestCase(ResortFixturesMixin, APITestCase):
    """POST /api/payments: discount, payment and booking change together"""

    def setUp(self):
        super().setUp()
        self.booking = self.make_booking()

    def pay(self, **overrides):
        data = {'bookingId': self.booking.id, 'paymentMethod': 'card', 'amount': 200}
        data.update(overrides)
        return self.client.post('/api/payments', data, format='json')

    def test_payment_with_percent_discount(self):
        discount = self.make_discount(value=Decimal("10"), usage_limit=5, usage_used=0)

        response = self.pay(discountCode='WELCOME10')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['payment']['status'], Payment.Status.COMPLETED)
        self.assertEqual(response.data['payment']['amount'], Decimal("180.00"))
        self.assertEqual(response.data['payment']['discount_code'], 'WELCOME10')

        payment = Payment.objects.get(booking=self.booking)
        self.assertEqual(payment.amount, Decimal("180.00"))
        self.assertEqual(payment.discount, discount)
        self.assertIsNotNone(payment.paid_at)

        discount.refresh_from_db()
        self.booking.refresh_from_db()
        self.room.refresh_from_db()
        self.assertEqual(discount.usage_used, 1)
        self.assertEqual(self.booking.status, Booking.Status.CONFIRMED)
        self.assertEqual(self.room.status, Room.Status.RESERVED)

    def test_payment_without_discount_charges_full_amount(self):
        response = self.pay(paymentMethod='cash')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        payment = Payment.objects.get(booking=self.booking)
        self.assertEqual(payment.amount, Decimal("200.00"))
        self.assertIsNone(payment.discount)
        self.assertEqual(payment.payment_method, Payment.Method.CASH)

    def test_unknown_discount_code_is_ignored(self):
        response = self.pay(discountCode='NOPE')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Payment.objects.get(booking=self.booking).amount, Decimal("200.00"))

    def test_fixed_discount(self):
        self.make_discount(code='SAVE50', discount_type=Discount.Type.FIXED, value=Decimal("50"))
        response = self.pay(discountCode='SAVE50')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Payment.objects.get(booking=self.booking).amount, Decimal("150.00"))

    def test_second_payment_is_a_conflict(self):
        first = self.pay()
        self.assertEqual(first.status_code, status.HTTP_201_CREATED)

        second = self.pay()

        self.assertEqual(second.status_code, status.HTTP_409_CONFLICT)
        self.assertIn('already been paid', second.data['error'])
        self.assertEqual(
            Payment.objects.filter(booking=self.booking, status=Payment.Status.COMPLETED).count(), 1)

    def test_exhausted_discount_rolls_back_everything(self):
        discount = self.make_discount(usage_limit=3, usage_used=3)

        response = self.pay(discountCode='WELCOME10')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('no uses left', response.data['error'])
        discount.refresh_from_db()
        self.booking.refresh_from_db()
        self.assertEqual(discount.usage_used, 3)
        self.assertFalse(Payment.objects.exists())
        self.assertEqual(self.booking.status, Booking.Status.PENDING)

    def test_discount_limit_reached_concurrently_is_a_validation_error(self):
        # the usage check passes but the database limit rejects the increment
        discount = self.make_discount(usage_limit=2, usage_used=2)

        with mock.patch.object(Discount, 'is_exhausted', new_callable=mock.PropertyMock, return_value=False):
            response = self.pay(discountCode='WELCOME10')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('no uses left', response.data['error'])
        discount.refresh_from_db()
        self.booking.refresh_from_db()
        self.assertEqual(discount.usage_used, 2)
        self.assertFalse(Payment.objects.exists())
        self.assertEqual(self.booking.status, Booking.Status.PENDING)

    def test_failure_mid_transaction_rolls_back_discount_usage(self):
        discount = self.make_discount()

        with mock.patch.object(Payment, 'complete', side_effect=DatabaseError('write failed')):
            response = self.pay(discountCode='WELCOME10')

        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        discount.refresh_from_db()
        self.booking.refresh_from_db()
        self.room.refresh_from_db()
        self.assertEqual(discount.usage_used, 0)
        self.assertFalse(Payment.objects.exists())
        self.assertEqual(self.booking.status, Booking.Status.PENDING)
        self.assertEqual(self.room.status, Room.Status.AVAILABLE)

    def test_invalid_payment_method(self):
        response = self.pay(paymentMethod='bitcoin')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('paymentMethod', response.data['error'])

    def test_missing_fields(self):
        response = self.client.post('/api/payments', {'bookingId': self.booking.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_booking_of_another_user_is_not_found(self):
        foreign = self.make_booking(user=self.other_guest)
        response = self.pay(bookingId=foreign.id)

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(Payment.objects.exists())

    def test_cancelled_booking_cannot_be_paid(self):
        Booking.objects.filter(pk=self.booking.pk).update(status=Booking.Status.CANCELLED)
        response = self.pay()
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class CompletedPaymentConstraintTestCase(ResortFixturesMixin, APITestCase):

    def test_only_one_completed_payment_per_booking(self):
        booking = self.make_booking()
        self.make_completed_payment(booking)

        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                self.make_completed_payment(booking)

    def test_refunded_payment_does_not_block_constraint(self):
        booking = self.make_booking()
        payment = self.make_completed_payment(booking)
        payment.refund(Decimal("200.00"), "changed plans")

        self.make_completed_payment(booking)
        self.assertEqual(booking.payments.count(), 2)


class BookingCancellationTestCase(ResortFixturesMixin, APITestCase):
    """PUT /api/bookings/:id/cancel"""

    def test_cancel_pending_booking_frees_room(self):
        booking = self.make_booking()
        Room.objects.filter(pk=self.room.pk).update(status=Room.Status.RESERVED)

        response = self.client.put(f'/api/bookings/{booking.id}/cancel')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['booking'], {'id': booking.id, 'status': Booking.Status.CANCELLED})
        booking.refresh_from_db()
        self.room.refresh_from_db()
        self.assertEqual(booking.status, Booking.Status.CANCELLED)
        self.assertEqual(self.room.status, Room.Status.AVAILABLE)

    def test_cancel_confirmed_booking(self):
        booking = self.make_booking(booking_status=Booking.Status.CONFIRMED)
        response = self.client.put(f'/api/bookings/{booking.id}/cancel')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_cancellation_window_has_passed(self):
        booking = self.make_booking()
        Booking.objects.filter(pk=booking.pk).update(created_at=timezone.now() - timedelta(hours=25))

        response = self.client.put(f'/api/bookings/{booking.id}/cancel')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        booking.refresh_from_db()
        self.assertEqual(booking.status, Booking.Status.PENDING)

    def test_just_inside_window(self):
        booking = self.make_booking()
        Booking.objects.filter(pk=booking.pk).update(created_at=timezone.now() - timedelta(hours=23))
        response = self.client.put(f'/api/bookings/{booking.id}/cancel')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_statuses_outside_pending_confirmed_cannot_be_cancelled(self):
        for booking_status in [Booking.Status.CANCELLED, Booking.Status.CHECKED_IN,
                               Booking.Status.CHECKED_OUT, Booking.Status.COMPLETED]:
            with self.subTest(status=booking_status):
                booking = self.make_booking(booking_status=booking_status)
                response = self.client.put(f'/api/bookings/{booking.id}/cancel')
                self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
                booking.refresh_from_db()
                self.assertEqual(booking.status, booking_status)

    def test_cannot_cancel_someone_elses_booking(self):
        booking = self.make_booking(user=self.other_guest)

        response = self.client.put(f'/api/bookings/{booking.id}/cancel')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        booking.refresh_from_db()
        self.assertEqual(booking.status, Booking.Status.PENDING)

    def test_staff_can_cancel_any_booking(self):
        booking = self.make_booking(user=self.other_guest)
        self.client.force_authenticate(user=self.admin)
        response = self.client.put(f'/api/bookings/{booking.id}/cancel')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_missing_booking(self):
        response = self.client.put('/api/bookings/9999/cancel')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class BookingStatusUpdateTestCase(ResortFixturesMixin, APITestCase):
    """PUT /api/bookings/:id/status keeps the room in step"""

    def setUp(self):
        super().setUp()
        self.client.force_authenticate(user=self.admin)

    def set_status(self, booking, new_status):
        return self.client.put(f'/api/bookings/{booking.id}/status', {'status': new_status}, format='json')

    def test_full_stay_lifecycle(self):
        booking = self.make_booking()
        steps = [
            (Booking.Status.CONFIRMED, Room.Status.RESERVED),
            (Booking.Status.CHECKED_IN, Room.Status.OCCUPIED),
            (Booking.Status.CHECKED_OUT, Room.Status.AVAILABLE),
        ]
        for booking_status, room_status in steps:
            with self.subTest(status=booking_status):
                response = self.set_status(booking, booking_status)
                self.assertEqual(response.status_code, status.HTTP_200_OK)
                self.assertEqual(response.data['room']['status'], room_status)

                booking.refresh_from_db()
                self.room.refresh_from_db()
                self.assertEqual(booking.status, booking_status)
                self.assertEqual(self.room.status, room_status)

    def test_cancelled_releases_room(self):
        booking = self.make_booking(booking_status=Booking.Status.CONFIRMED)
        Room.objects.filter(pk=self.room.pk).update(status=Room.Status.RESERVED)

        response = self.set_status(booking, Booking.Status.CANCELLED)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.room.refresh_from_db()
        self.assertEqual(self.room.status, Room.Status.AVAILABLE)

    def test_cancelling_one_booking_keeps_room_of_checked_in_guest(self):
        booking = self.make_booking(booking_status=Booking.Status.CONFIRMED)
        self.make_booking(user=self.other_guest, booking_status=Booking.Status.CHECKED_IN)
        Room.objects.filter(pk=self.room.pk).update(status=Room.Status.OCCUPIED)

        response = self.set_status(booking, Booking.Status.CANCELLED)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['room']['status'], Room.Status.OCCUPIED)
        self.room.refresh_from_db()
        self.assertEqual(self.room.status, Room.Status.OCCUPIED)

    def test_invalid_transition_changes_nothing(self):
        booking = self.make_booking()

        response = self.set_status(booking, Booking.Status.CHECKED_IN)

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        booking.refresh_from_db()
        self.room.refresh_from_db()
        self.assertEqual(booking.status, Booking.Status.PENDING)
        self.assertEqual(self.room.status, Room.Status.AVAILABLE)

    def test_unknown_status_value(self):
        booking = self.make_booking()
        for value in ['completed', 'pending', 'archived', '']:
            with self.subTest(value=value):
                response = self.set_status(booking, value)
                self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_room_update_failure_rolls_back_booking(self):
        booking = self.make_booking()

        with mock.patch.object(Room.objects, 'filter', side_effect=DatabaseError('room row locked')):
            response = self.set_status(booking, Booking.Status.CONFIRMED)

        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        booking.refresh_from_db()
        self.assertEqual(booking.status, Booking.Status.PENDING)

    def test_guest_cannot_update_status(self):
        booking = self.make_booking()
        self.client.force_authenticate(user=self.guest)

        response = self.set_status(booking, Booking.Status.CONFIRMED)

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_missing_booking(self):
        response = self.client.put('/api/bookings/9999/status', {'status': 'confirmed'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class RefundTestCase(ResortFixturesMixin, APITestCase):
    """POST /api/payments/:id/refund"""

    def setUp(self):
        super().setUp()
        self.booking = self.make_booking(booking_status=Booking.Status.CONFIRMED)
        self.payment = self.make_completed_payment(self.booking, amount=Decimal("200.00"))
        Room.objects.filter(pk=self.room.pk).update(status=Room.Status.RESERVED)
        self.client.force_authenticate(user=self.admin)

    def refund(self, payment_id=None, **data):
        return self.client.post(f'/api/payments/{payment_id or self.payment.id}/refund', data, format='json')

    def test_refund_more_than_paid_is_rejected(self):
        response = self.refund(refundAmount=250)

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.payment.refresh_from_db()
        self.booking.refresh_from_db()
        self.assertEqual(self.payment.status, Payment.Status.COMPLETED)
        self.assertEqual(self.booking.status, Booking.Status.CONFIRMED)

    def test_full_refund(self):
        response = self.refund(refundAmount=200, reason='Guest request')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['refund_amount'], Decimal("200"))

        self.payment.refresh_from_db()
        self.booking.refresh_from_db()
        self.room.refresh_from_db()
        self.assertEqual(self.payment.status, Payment.Status.REFUNDED)
        self.assertEqual(self.payment.refund_amount, Decimal("200.00"))
        self.assertEqual(self.payment.refund_reason, 'Guest request')
        self.assertIsNotNone(self.payment.refunded_at)
        self.assertEqual(self.booking.status, Booking.Status.CANCELLED)
        self.assertEqual(self.room.status, Room.Status.AVAILABLE)

    def test_partial_refund(self):
        response = self.refund(refundAmount='50.25')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.refund_amount, Decimal("50.25"))
        self.assertEqual(self.payment.status, Payment.Status.REFUNDED)

    def test_refund_twice_is_rejected(self):
        self.assertEqual(self.refund(refundAmount=100).status_code, status.HTTP_200_OK)
        response = self.refund(refundAmount=100)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_missing_refund_amount(self):
        response = self.refund()
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('refundAmount', response.data['error'])

    def test_missing_payment(self):
        response = self.refund(payment_id=9999, refundAmount=10)
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_guest_cannot_refund(self):
        self.client.force_authenticate(user=self.guest)
        response = self.refund(refundAmount=10)
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_refund_of_finished_stay_keeps_current_guest_room(self):
        Booking.objects.filter(pk=self.booking.pk).update(status=Booking.Status.CHECKED_OUT)
        current_stay = self.make_booking(user=self.other_guest, booking_status=Booking.Status.CHECKED_IN)
        Room.objects.filter(pk=self.room.pk).update(status=Room.Status.OCCUPIED)

        response = self.refund(refundAmount=50)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['booking']['status'], Booking.Status.CHECKED_OUT)
        self.payment.refresh_from_db()
        self.booking.refresh_from_db()
        current_stay.refresh_from_db()
        self.room.refresh_from_db()
        self.assertEqual(self.payment.status, Payment.Status.REFUNDED)
        self.assertEqual(self.booking.status, Booking.Status.CHECKED_OUT)
        self.assertEqual(current_stay.status, Booking.Status.CHECKED_IN)
        self.assertEqual(self.room.status, Room.Status.OCCUPIED)

    def test_refund_of_cancelled_booking_leaves_room_alone(self):
        Booking.objects.filter(pk=self.booking.pk).update(status=Booking.Status.CANCELLED)
        Room.objects.filter(pk=self.room.pk).update(status=Room.Status.MAINTENANCE)

        response = self.refund(refundAmount=200)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.booking.refresh_from_db()
        self.room.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.CANCELLED)
        self.assertEqual(self.room.status, Room.Status.MAINTENANCE)

    def test_refund_of_confirmed_booking_does_not_free_occupied_room(self):
        self.make_booking(user=self.other_guest, booking_status=Booking.Status.CHECKED_IN)
        Room.objects.filter(pk=self.room.pk).update(status=Room.Status.OCCUPIED)

        response = self.refund(refundAmount=200)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.booking.refresh_from_db()
        self.room.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.CANCELLED)
        self.assertEqual(self.room.status, Room.Status.OCCUPIED)

    def test_refund_of_checked_in_stay_frees_room(self):
        Booking.objects.filter(pk=self.booking.pk).update(status=Booking.Status.CHECKED_IN)
        Room.objects.filter(pk=self.room.pk).update(status=Room.Status.OCCUPIED)

        response = self.refund(refundAmount=100, reason='Left early')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.booking.refresh_from_db()
        self.room.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.CANCELLED)
        self.assertEqual(self.room.status, Room.Status.AVAILABLE)


class PaymentReadTestCase(ResortFixturesMixin, APITestCase):
    """Payment history, invoices and statistics"""

    def setUp(self):
        super().setUp()
        self.booking = self.make_booking(booking_status=Booking.Status.CONFIRMED)
        self.payment = self.make_completed_payment(self.booking, amount=Decimal("200.00"))
        other_booking = self.make_booking(user=self.other_guest, booking_status=Booking.Status.CONFIRMED)
        self.other_payment = self.make_completed_payment(other_booking, amount=Decimal("100.00"))

    def test_guest_sees_only_own_payments(self):
        response = self.client.get('/api/payments')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([p['id'] for p in response.data], [self.payment.id])

        response = self.client.get('/api/payments/my-payments')
        self.assertEqual([p['id'] for p in response.data], [self.payment.id])

    def test_guest_cannot_read_foreign_payment(self):
        response = self.client.get(f'/api/payments/{self.other_payment.id}')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_invoice(self):
        response = self.client.get(f'/api/payments/{self.payment.id}/invoice')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['transaction_code'], self.payment.transaction_code)
        self.assertEqual(response.data['booking_code'], self.booking.booking_code)
        self.assertEqual(response.data['resort_name'], 'Sunset Bay')
        self.assertEqual(response.data['room_type'], 'Deluxe')
        self.assertEqual(response.data['nights'], 2)
        self.assertEqual(response.data['price_per_night'], Decimal("100.00"))
        self.assertIsNone(response.data['discount_code'])

    def test_no_invoice_for_refunded_payment(self):
        self.payment.refund(Decimal("200.00"))
        response = self.client.get(f'/api/payments/{self.payment.id}/invoice')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_stats_for_staff(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.get('/api/payments/stats')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_payments'], 2)
        self.assertEqual(response.data['total_users'], 2)
        self.assertEqual(response.data['total_revenue'], Decimal("300.00"))
        self.assertEqual(response.data['total_refunded'], Decimal("0"))

    def test_stats_by_method(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.get('/api/payments/by-method')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['payment_method'], Payment.Method.CARD)
        self.assertEqual(response.data[0]['transaction_count'], 2)

    def test_stats_invalid_dates(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.get('/api/payments/stats', {'startDate': 'yesterday', 'endDate': '2025-12-01'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_stats_require_staff(self):
        response = self.client.get('/api/payments/stats')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class BookingReadTestCase(ResortFixturesMixin, APITestCase):

    def test_guest_sees_only_own_bookings(self):
        own = self.make_booking()
        foreign = self.make_booking(user=self.other_guest)

        response = self.client.get('/api/bookings/my-bookings')
        self.assertEqual([b['id'] for b in response.data], [own.id])

        response = self.client.get(f'/api/bookings/{foreign.id}')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_booking_detail_includes_payment_status(self):
        booking = self.make_booking(booking_status=Booking.Status.CONFIRMED)
        self.make_completed_payment(booking)

        response = self.client.get(f'/api/bookings/{booking.id}')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['payment_status'], Payment.Status.COMPLETED)
        self.assertEqual(response.data['resort_name'], 'Sunset Bay')
        self.assertEqual(response.data['nights'], 2)

    def test_booking_lists_fetch_payments_in_one_query(self):
        for _ in range(3):
            self.make_completed_payment(self.make_booking(booking_status=Booking.Status.CONFIRMED))

        for url in ['/api/bookings', '/api/bookings/my-bookings']:
            with self.subTest(url=url):
                with self.assertNumQueries(2):
                    response = self.client.get(url)
                self.assertEqual(len(response.data), 3)
                self.assertEqual({b['payment_status'] for b in response.data}, {Payment.Status.COMPLETED})

    def test_staff_list_filters_by_status(self):
        self.make_booking()
        confirmed = self.make_booking(user=self.other_guest, booking_status=Booking.Status.CONFIRMED)
        self.client.force_authenticate(user=self.admin)

        response = self.client.get('/api/bookings', {'status': 'confirmed'})

        self.assertEqual([b['id'] for b in response.data], [confirmed.id])


class CatalogueTestCase(ResortFixturesMixin, APITestCase):
    """Resorts, room types, rooms and discounts"""

    def test_resorts_are_public(self):
        self.client.force_authenticate(user=None)
        response = self.client.get('/api/resorts')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data[0]['room_count'], 1)

    def test_guest_cannot_create_resort(self):
        response = self.client.post('/api/resorts', {'name': 'Hidden Cove'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_resort_with_rooms_cannot_be_deleted(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.delete(f'/api/resorts/{self.resort.id}')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

        empty = Resort.objects.create(name="Empty Resort")
        response = self.client.delete(f'/api/resorts/{empty.id}')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(Resort.objects.filter(pk=empty.pk).exists())

    def test_room_type_in_use_cannot_be_deleted(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.delete(f'/api/room-types/{self.room_type.id}')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_create_room_with_price_override(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.post('/api/rooms', {
            'resort': self.resort.id,
            'room_type': self.room_type.id,
            'location': 'B-202',
            'detail': {'description': 'Corner room', 'num_bed': '1 king', 'price_per_night': '150.00'},
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], Room.Status.AVAILABLE)
        self.assertEqual(response.data['default_price'], Decimal("120.00"))
        self.assertEqual(response.data['actual_price'], Decimal("150.00"))
        room = Room.objects.get(pk=response.data['id'])
        self.assertEqual(room.detail.description, 'Corner room')

    def test_update_room_detail(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.patch(f'/api/rooms/{self.room.id}', {
            'status': Room.Status.MAINTENANCE,
            'detail': {'price_per_night': '99.00'},
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.room.refresh_from_db()
        self.assertEqual(self.room.status, Room.Status.MAINTENANCE)
        self.assertEqual(self.room.detail.price_per_night, Decimal("99.00"))
        self.assertEqual(self.room.detail.description, 'Ocean view')

    def test_room_without_override_uses_type_price(self):
        self.assertEqual(self.room.actual_price, Decimal("120.00"))

    def test_room_list_filters(self):
        other_resort = Resort.objects.create(name="Pine Hill")
        Room.objects.create(resort=other_resort, room_type=self.room_type, location="Villa 7")

        response = self.client.get('/api/rooms', {'resort_id': self.resort.id})
        self.assertEqual([r['id'] for r in response.data], [self.room.id])

        response = self.client.get('/api/rooms', {'location': 'villa'})
        self.assertEqual([r['location'] for r in response.data], ['Villa 7'])

        response = self.client.get('/api/rooms', {'room_type': 'Standard'})
        self.assertEqual(response.data, [])

    def test_room_with_bookings_cannot_be_deleted(self):
        self.make_booking()
        self.client.force_authenticate(user=self.admin)

        response = self.client.delete(f'/api/rooms/{self.room.id}')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertTrue(Room.objects.filter(pk=self.room.pk).exists())

    def test_delete_room_removes_detail(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.delete(f'/api/rooms/{self.room.id}')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(RoomDetail.objects.exists())

    def test_create_discount_validation(self):
        self.client.force_authenticate(user=self.admin)
        now = timezone.now()
        base = {
            'code': 'SUMMER', 'name': 'Summer', 'discount_type': 'percent', 'value': '15',
            'valid_from': now.isoformat(), 'valid_until': (now + timedelta(days=30)).isoformat(),
            'usage_limit': 10,
        }

        response = self.client.post('/api/discounts', base, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['usage_used'], 0)
        self.assertEqual(response.data['status'], Discount.Status.ACTIVE)

        scenarios = [
            dict(base, code='TOOMUCH', value='150'),
            dict(base, code='BACKWARDS', valid_until=(now - timedelta(days=1)).isoformat()),
            dict(base, code='SUMMER'),
        ]
        for data in scenarios:
            with self.subTest(code=data['code']):
                response = self.client.post('/api/discounts', data, format='json')
                self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_discount_list_filter(self):
        self.make_discount(code='ON')
        self.make_discount(code='OFF', status=Discount.Status.INACTIVE)

        response = self.client.get('/api/discounts', {'status': 'inactive'})

        self.assertEqual([d['code'] for d in response.data], ['OFF'])


class UserManagementTestCase(ResortFixturesMixin, APITestCase):
    """/api/users"""

    def setUp(self):
        super().setUp()
        self.guest.set_password('secret123')
        self.guest.save()

    def test_staff_creates_user_with_hashed_password(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.post('/api/users', {
            'username': 'frontdesk',
            'email': 'frontdesk@example.com',
            'full_name': 'Front Desk',
            'password': 'desk-pass',
            'role': 'staff',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertNotIn('password', response.data)
        self.assertNotIn('password_hash', response.data)
        user = User.objects.get(username='frontdesk')
        self.assertEqual(user.role, User.Role.STAFF)
        self.assertNotEqual(user.password_hash, 'desk-pass')
        self.assertTrue(user.check_password('desk-pass'))

    def test_create_user_validation(self):
        self.client.force_authenticate(user=self.admin)
        base = {'username': 'newbie', 'email': 'newbie@example.com', 'full_name': 'New Bie', 'password': 'abcdef'}
        scenarios = [
            ('password', dict(base, password='123')),
            ('password', {k: v for k, v in base.items() if k != 'password'}),
            ('email', dict(base, email='not-an-email')),
            ('email', dict(base, email='guest@example.com')),
            ('username', dict(base, username='guest')),
            ('full_name', {k: v for k, v in base.items() if k != 'full_name'}),
            ('role', dict(base, role='owner')),
        ]
        for field, data in scenarios:
            with self.subTest(field=field, data=data):
                response = self.client.post('/api/users', data, format='json')
                self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
                self.assertIn(field, response.data['error'])
        self.assertFalse(User.objects.filter(username='newbie').exists())

    def test_guest_cannot_list_or_create_users(self):
        self.assertEqual(self.client.get('/api/users').status_code, status.HTTP_403_FORBIDDEN)
        response = self.client.post('/api/users', {'username': 'x'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_staff_lists_users_by_role(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.get('/api/users', {'role': 'admin'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([u['username'] for u in response.data], ['admin'])

    def test_guest_reads_only_own_account(self):
        response = self.client.get(f'/api/users/{self.guest.id}')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['email'], 'guest@example.com')

        response = self.client.get(f'/api/users/{self.other_guest.id}')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_staff_updates_user(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.patch(f'/api/users/{self.other_guest.id}',
                                     {'role': 'manager', 'is_active': False}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.other_guest.refresh_from_db()
        self.assertEqual(self.other_guest.role, User.Role.MANAGER)
        self.assertFalse(self.other_guest.is_active)

    def test_password_cannot_be_set_through_update(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.patch(f'/api/users/{self.guest.id}', {'password': 'hijacked'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.guest.refresh_from_db()
        self.assertTrue(self.guest.check_password('secret123'))

    def test_guest_cannot_update_own_role(self):
        response = self.client.patch(f'/api/users/{self.guest.id}', {'role': 'admin'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_change_password(self):
        response = self.client.put(f'/api/users/{self.guest.id}/change-password',
                                   {'old_password': 'secret123', 'new_password': 'better-secret'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.guest.refresh_from_db()
        self.assertTrue(self.guest.check_password('better-secret'))
        self.assertFalse(self.guest.check_password('secret123'))

    def test_change_password_rejections(self):
        scenarios = [
            ('old_password', {'old_password': 'wrong-one', 'new_password': 'better-secret'}),
            ('new_password', {'old_password': 'secret123', 'new_password': '123'}),
            ('new_password', {'old_password': 'secret123'}),
        ]
        for field, data in scenarios:
            with self.subTest(field=field, data=data):
                response = self.client.put(f'/api/users/{self.guest.id}/change-password', data, format='json')
                self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
                self.assertIn(field, response.data['error'])
        self.guest.refresh_from_db()
        self.assertTrue(self.guest.check_password('secret123'))

    def test_cannot_change_someone_elses_password(self):
        response = self.client.put(f'/api/users/{self.other_guest.id}/change-password',
                                   {'old_password': 'x', 'new_password': 'better-secret'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_user_with_history_cannot_be_deleted(self):
        self.make_booking(user=self.other_guest)
        self.client.force_authenticate(user=self.admin)

        response = self.client.delete(f'/api/users/{self.other_guest.id}')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertTrue(User.objects.filter(pk=self.other_guest.pk).exists())

    def test_delete_user(self):
        idle = User.objects.create(username='idle', email='idle@example.com')
        self.client.force_authenticate(user=self.admin)

        response = self.client.delete(f'/api/users/{idle.id}')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(User.objects.filter(pk=idle.pk).exists())
        self.assertEqual(self.client.delete('/api/users/9999').status_code, status.HTTP_404_NOT_FOUND)

    def test_guest_cannot_delete_user(self):
        response = self.client.delete(f'/api/users/{self.other_guest.id}')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class AuthenticationTestCase(ResortFixturesMixin, APITestCase):
    """Bearer tokens and the development bypass"""

    def setUp(self):
        super().setUp()
        self.client.force_authenticate(user=None)

    def test_valid_bearer_token(self):
        booking = self.make_booking()
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {create_access_token(self.guest)}')

        response = self.client.get('/api/bookings/my-bookings')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([b['id'] for b in response.data], [booking.id])

    def test_invalid_token(self):
        self.client.credentials(HTTP_AUTHORIZATION='Bearer not-a-token')
        response = self.client.get('/api/bookings/my-bookings')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertIn('error', response.data)

    def test_expired_token(self):
        token = create_access_token(self.guest, expires_delta=timedelta(minutes=-1))
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')
        response = self.client.get('/api/bookings/my-bookings')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_inactive_user_token(self):
        token = create_access_token(self.guest)
        User.objects.filter(pk=self.guest.pk).update(is_active=False)
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')
        response = self.client.get('/api/bookings/my-bookings')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_no_credentials(self):
        response = self.client.get('/api/bookings/my-bookings')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    @override_settings(AUTH_BYPASS=True)
    def test_development_bypass_injects_admin(self):
        response = self.client.get('/api/payments/stats')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        user = User.objects.get(username=settings.DEV_AUTH_USERNAME)
        self.assertEqual(user.role, User.Role.ADMIN)


class HealthCheckTestCase(TestCase):

    def test_health(self):
        response = self.client.get('/health')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'status': 'ok'})

    def test_welcome(self):
        self.assertIn('message', self.client.get('/').json())


@skipUnless(connection.vendor == 'postgresql', 'row locking needs PostgreSQL')
class ConcurrentDiscountRedemptionTestCase(TransactionTestCase):
    """Concurrent payments must not redeem a discount past its limit"""

    def setUp(self):
        resort = Resort.objects.create(name="Race Resort")
        room_type = RoomType.objects.create(name="Standard", price_per_night=Decimal("100.00"))
        self.room = Room.objects.create(resort=resort, room_type=room_type, location="R-1")
        self.guest = User.objects.create(username="racer", email="racer@example.com")
        now = timezone.now()
        self.discount = Discount.objects.create(
            code="RACE", name="Race", discount_type=Discount.Type.PERCENT, value=Decimal("10"),
            usage_limit=3, valid_from=now - timedelta(days=1), valid_until=now + timedelta(days=1),
        )
        self.bookings = [
            Booking.objects.create(
                user=self.guest, room=self.room, check_in=date.today(), check_out=date.today() + timedelta(days=1),
                nightly_rate=Decimal("100.00"), total_amount=Decimal("100.00"),
            )
            for _ in range(8)
        ]

    def test_concurrent_redemptions_respect_limit(self):

        def pay(booking_id):
            """Pay one booking with the shared code"""
            try:
                serializer = PaymentCreateSerializer(
                    data={'bookingId': booking_id, 'paymentMethod': 'card', 'amount': '100', 'discountCode': 'RACE'},
                    context={'request': SimpleNamespace(user=self.guest)},
                )
                serializer.is_valid(raise_exception=True)
                serializer.save()
                return {'success': True}
            except serializers.ValidationError as e:
                return {'success': False, 'error': str(e)}
            finally:
                connection.close()

        with ThreadPoolExecutor(max_workers=len(self.bookings)) as executor:
            futures = [executor.submit(pay, booking.id) for booking in self.bookings]
            results = [future.result() for future in as_completed(futures)]

        successful = [r for r in results if r['success']]
        self.discount.refresh_from_db()
        self.assertEqual(len(successful), 3)
        self.assertEqual(self.discount.usage_used, 3)
        self.assertEqual(Payment.objects.filter(discount=self.discount, status=Payment.Status.COMPLETED).count(), 3)
