import logging
from decimal import Decimal

from django.conf import settings
from django.db import transaction
from django.db.models import Avg, Count, DecimalField, Q, Sum, Value
from django.db.models.functions import Coalesce
from django.http import JsonResponse
from django.utils import timezone
from django.utils.dateparse import parse_date
from rest_framework import mixins, viewsets, status
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from .models import Resort, RoomType, Room, User, Booking, Payment, Discount
from .permissions import IsOwnerOrStaff, IsSelfOrStaff, IsStaffOrReadOnly, IsStaffRole, has_staff_role
from .serializers import (
    ResortSerializer, RoomTypeSerializer, RoomSerializer, BookingSerializer, BookingCreateSerializer,
    BookingStatusSerializer, DiscountSerializer, PaymentSerializer, PaymentCreateSerializer, RefundSerializer,
    UserSerializer, ChangePasswordSerializer,
)

logger = logging.getLogger(__name__)

ZERO = Value(Decimal("0"), output_field=DecimalField(max_digits=12, decimal_places=2))


def welcome(request):
    return JsonResponse({"message": "Welcome to the Resort Management API"})

def health_check(request):
    return JsonResponse({"status": "ok"})

def date_range_filter(request, field):
    """Build a Q for ``startDate``/``endDate`` query params (both required, YYYY-MM-DD)."""
    start_str = request.query_params.get('startDate')
    end_str = request.query_params.get('endDate')
    if not (start_str and end_str):
        return Q()
    start, end = parse_date(start_str), parse_date(end_str)
    if start is None or end is None:
        raise ValidationError('Invalid date format. Use YYYY-MM-DD')
    return Q(**{f'{field}__date__range': (start, end)})


class ResortViewSet(viewsets.ModelViewSet):
    queryset = Resort.objects.order_by('name')
    serializer_class = ResortSerializer
    permission_classes = [IsStaffOrReadOnly]
    lookup_value_regex = r'\d+'

    def destroy(self, request, pk=None, **kwargs):
        resort = self.get_object()
        if resort.rooms.exists():
            return Response({'error': 'Resort still has rooms; remove or move them first'},
                            status=status.HTTP_409_CONFLICT)
        resort.delete()
        return Response({'message': 'Resort deleted'})


class RoomTypeViewSet(viewsets.ModelViewSet):
    queryset = RoomType.objects.order_by('name')
    serializer_class = RoomTypeSerializer
    permission_classes = [IsStaffOrReadOnly]
    lookup_value_regex = r'\d+'

    def destroy(self, request, pk=None, **kwargs):
        room_type = self.get_object()
        if room_type.rooms.exists():
            return Response({'error': 'Room type is still used by rooms'},
                            status=status.HTTP_409_CONFLICT)
        room_type.delete()
        return Response({'message': 'Room type deleted'})


class RoomViewSet(viewsets.ModelViewSet):
    queryset = Room.objects.select_related('resort', 'room_type', 'detail')
    serializer_class = RoomSerializer
    permission_classes = [IsStaffOrReadOnly]
    lookup_value_regex = r'\d+'

    def get_queryset(self):
        qs = super().get_queryset()
        if self.action != 'list':
            return qs

        resort_id = self.request.query_params.get('resort_id')
        location = self.request.query_params.get('location')
        room_type = self.request.query_params.get('room_type')
        if resort_id:
            if not resort_id.isdigit():
                raise ValidationError('resort_id must be an integer')
            qs = qs.filter(resort_id=resort_id)
        if location:
            qs = qs.filter(location__icontains=location)
        if room_type:
            qs = qs.filter(room_type__name=room_type)
        return qs.order_by('-created_at')

    def destroy(self, request, pk=None, **kwargs):
        with transaction.atomic():
            room = Room.objects.select_for_update().filter(pk=pk).first()
            if room is None:
                return Response({'error': 'Room not found'}, status=status.HTTP_404_NOT_FOUND)
            if room.bookings.exists():
                return Response({'error': 'Room has bookings and cannot be deleted; '
                                          'set its status to maintenance instead'},
                                status=status.HTTP_409_CONFLICT)
            room.delete()
        logger.info("Room %s deleted", pk)
        return Response({'message': 'Room deleted'})


class BookingViewSet(mixins.CreateModelMixin,
                     mixins.ListModelMixin,
                     mixins.RetrieveModelMixin,
                     viewsets.GenericViewSet):
    serializer_class = BookingSerializer
    permission_classes = [IsAuthenticated, IsOwnerOrStaff]
    lookup_value_regex = r'\d+'

    def get_queryset(self):
        qs = (Booking.objects.select_related('room__resort', 'user')
              .prefetch_related('payments').order_by('-created_at'))
        if not has_staff_role(self.request.user):
            qs = qs.filter(user=self.request.user)
        status_filter = self.request.query_params.get('status')
        if self.action == 'list' and status_filter:
            qs = qs.filter(status=status_filter)
        return qs

    def create(self, request, *args, **kwargs):
        serializer = BookingCreateSerializer(data=request.data, context=self.get_serializer_context())
        serializer.is_valid(raise_exception=True)
        booking = serializer.save()
        return Response({
            'message': 'Booking created',
            'booking': {
                'id': booking.id,
                'booking_code': booking.booking_code,
                'total_amount': booking.total_amount,
            },
        }, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['get'], url_path='my-bookings')
    def my_bookings(self, request):
        """Bookings of the authenticated user, newest first"""
        bookings = (Booking.objects.filter(user=request.user).select_related('room__resort')
                    .prefetch_related('payments').order_by('-created_at'))
        serializer = self.get_serializer(bookings, many=True)
        return Response(serializer.data)

    @action(detail=True, methods=['put'])
    def cancel(self, request, pk=None):
        """Cancel a pending/confirmed booking within the cancellation window and free its room"""
        window = settings.BOOKING_CANCELLATION_WINDOW

        with transaction.atomic():
            booking = Booking.objects.select_for_update().filter(pk=pk).first()
            if booking is None:
                return Response({'error': 'Booking not found'}, status=status.HTTP_404_NOT_FOUND)

            if booking.user_id != request.user.pk and not has_staff_role(request.user):
                return Response({'error': 'You can only cancel your own bookings'},
                                status=status.HTTP_403_FORBIDDEN)

            if booking.status not in Booking.CANCELLABLE:
                return Response({'error': f'A {booking.status} booking cannot be cancelled'},
                                status=status.HTTP_400_BAD_REQUEST)

            if timezone.now() >= booking.cancellation_deadline(window):
                return Response({'error': 'The cancellation window for this booking has passed'},
                                status=status.HTTP_400_BAD_REQUEST)

            booking.set_status(Booking.Status.CANCELLED)

        logger.info("Booking %s cancelled by user %s", booking.booking_code, request.user.pk)
        return Response({
            'message': 'Booking cancelled',
            'booking': {'id': booking.id, 'status': booking.status},
        })

    @action(detail=True, methods=['put'], url_path='status', permission_classes=[IsStaffRole])
    def update_status(self, request, pk=None):
        """Move a booking through its lifecycle, keeping the room status in step"""
        serializer = BookingStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        new_status = serializer.validated_data['status']

        with transaction.atomic():
            booking = Booking.objects.select_for_update().filter(pk=pk).first()
            if booking is None:
                return Response({'error': 'Booking not found'}, status=status.HTTP_404_NOT_FOUND)

            if not booking.can_transition_to(new_status):
                return Response({'error': f'Cannot change booking status from {booking.status} to {new_status}'},
                                status=status.HTTP_400_BAD_REQUEST)

            previous = booking.status
            room_status = booking.set_status(new_status)

        logger.info("Booking %s status %s -> %s", booking.booking_code, previous, new_status)
        return Response({
            'message': 'Booking status updated',
            'booking': {'id': booking.id, 'status': booking.status, 'booking_code': booking.booking_code},
            'room': {'id': booking.room_id, 'status': room_status},
        })


class PaymentViewSet(mixins.CreateModelMixin,
                     mixins.ListModelMixin,
                     mixins.RetrieveModelMixin,
                     viewsets.GenericViewSet):
    serializer_class = PaymentSerializer
    permission_classes = [IsAuthenticated, IsOwnerOrStaff]
    lookup_value_regex = r'\d+'

    def get_queryset(self):
        qs = Payment.objects.select_related('booking', 'discount', 'user').order_by('-transaction_date')
        if not has_staff_role(self.request.user):
            qs = qs.filter(user=self.request.user)
        if self.action == 'list':
            params = self.request.query_params
            if params.get('status'):
                qs = qs.filter(status=params['status'])
            if params.get('paymentMethod'):
                qs = qs.filter(payment_method=params['paymentMethod'])
            qs = qs.filter(date_range_filter(self.request, 'transaction_date'))
        return qs

    def create(self, request, *args, **kwargs):
        serializer = PaymentCreateSerializer(data=request.data, context=self.get_serializer_context())
        serializer.is_valid(raise_exception=True)
        payment = serializer.save()
        return Response({
            'message': 'Payment successful',
            'payment': PaymentSerializer(payment).data,
        }, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['get'], url_path='my-payments')
    def my_payments(self, request):
        payments = (Payment.objects.filter(user=request.user)
                    .select_related('booking', 'discount').order_by('-transaction_date'))
        serializer = self.get_serializer(payments, many=True)
        return Response(serializer.data)

    @action(detail=True, methods=['post'], permission_classes=[IsStaffRole])
    def refund(self, request, pk=None):
        """Refund a completed payment and cancel its booking"""
        serializer = RefundSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        refund_amount = serializer.validated_data['refund_amount']
        reason = serializer.validated_data.get('reason') or ''

        with transaction.atomic():
            payment = Payment.objects.select_for_update().select_related('booking').filter(pk=pk).first()
            if payment is None:
                return Response({'error': 'Payment not found'}, status=status.HTTP_404_NOT_FOUND)

            if payment.status != Payment.Status.COMPLETED:
                return Response({'error': 'Only completed payments can be refunded'},
                                status=status.HTTP_400_BAD_REQUEST)

            if refund_amount > payment.amount:
                return Response({'error': 'Refund amount cannot exceed the amount paid'},
                                status=status.HTTP_400_BAD_REQUEST)

            payment.refund(refund_amount, reason)
            booking = payment.booking
            room_status = None
            # a finished or already cancelled stay keeps its status and leaves the room alone
            if booking.status in Booking.REFUND_CANCELLABLE:
                room_status = booking.set_status(Booking.Status.CANCELLED)

        logger.info("Payment %s refunded %s (booking %s now %s, room %s)",
                    payment.transaction_code, refund_amount, booking.booking_code, booking.status,
                    room_status or 'unchanged')
        return Response({
            'message': 'Refund successful',
            'refund_amount': refund_amount,
            'booking': {'id': booking.id, 'status': booking.status},
        })

    @action(detail=True, methods=['get'])
    def invoice(self, request, pk=None):
        payment = self.get_object()
        if payment.status != Payment.Status.COMPLETED:
            return Response({'error': 'Invoice not found'}, status=status.HTTP_404_NOT_FOUND)

        booking = payment.booking
        room = Room.objects.select_related('resort', 'room_type').get(pk=booking.room_id)
        discount = payment.discount
        return Response({
            'payment_id': payment.id,
            'transaction_code': payment.transaction_code,
            'amount': payment.amount,
            'payment_method': payment.payment_method,
            'transaction_date': payment.transaction_date,
            'paid_at': payment.paid_at,
            'booking_code': booking.booking_code,
            'check_in': booking.check_in,
            'check_out': booking.check_out,
            'nights': booking.nights,
            'booking_total': booking.total_amount,
            'customer_name': payment.user.full_name,
            'customer_email': payment.user.email,
            'customer_phone': payment.user.phone,
            'resort_name': room.resort.name,
            'location': room.location,
            'address': room.address,
            'room_type': room.room_type.name,
            'price_per_night': booking.nightly_rate,
            'discount_code': discount.code if discount else None,
            'discount_description': discount.description if discount else '',
        })

    @action(detail=False, methods=['get'], permission_classes=[IsStaffRole])
    def stats(self, request):
        completed = Q(status=Payment.Status.COMPLETED)
        qs = Payment.objects.filter(date_range_filter(request, 'transaction_date'))
        data = qs.aggregate(
            total_payments=Count('id'),
            total_users=Count('user', distinct=True),
            total_revenue=Coalesce(Sum('amount', filter=completed), ZERO),
            total_refunded=Coalesce(Sum('refund_amount', filter=Q(status=Payment.Status.REFUNDED)), ZERO),
            avg_payment_amount=Coalesce(Avg('amount', filter=completed), ZERO),
        )
        return Response(data)

    @action(detail=False, methods=['get'], url_path='by-method', permission_classes=[IsStaffRole])
    def by_method(self, request):
        completed = Q(status=Payment.Status.COMPLETED)
        rows = (Payment.objects.filter(date_range_filter(request, 'transaction_date'))
                .values('payment_method')
                .annotate(
                    transaction_count=Count('id'),
                    total_amount=Coalesce(Sum('amount', filter=completed), ZERO),
                    avg_amount=Coalesce(Avg('amount', filter=completed), ZERO),
                )
                .order_by('-total_amount'))
        return Response(list(rows))


class DiscountViewSet(viewsets.ModelViewSet):
    serializer_class = DiscountSerializer
    permission_classes = [IsStaffOrReadOnly]
    lookup_value_regex = r'\d+'

    def get_queryset(self):
        qs = Discount.objects.order_by('-created_at')
        status_filter = self.request.query_params.get('status')
        if self.action == 'list' and status_filter:
            qs = qs.filter(status=status_filter)
        return qs


class UserViewSet(viewsets.ModelViewSet):
    serializer_class = UserSerializer
    lookup_value_regex = r'\d+'

    def get_permissions(self):
        if self.action in ('retrieve', 'change_password'):
            return [IsAuthenticated(), IsSelfOrStaff()]
        return [IsStaffRole()]

    def get_queryset(self):
        qs = User.objects.order_by('-created_at')
        if not has_staff_role(self.request.user):
            qs = qs.filter(pk=self.request.user.pk)
        role = self.request.query_params.get('role')
        if self.action == 'list' and role:
            qs = qs.filter(role=role)
        return qs

    def destroy(self, request, pk=None, **kwargs):
        with transaction.atomic():
            user = User.objects.select_for_update().filter(pk=pk).first()
            if user is None:
                return Response({'error': 'User not found'}, status=status.HTTP_404_NOT_FOUND)
            if user.bookings.exists() or user.payments.exists():
                return Response({'error': 'User has bookings or payments and cannot be deleted; '
                                          'deactivate the account instead'},
                                status=status.HTTP_409_CONFLICT)
            user.delete()
        logger.info("User %s deleted by %s", pk, request.user.pk)
        return Response({'message': 'User deleted'})

    @action(detail=True, methods=['put'], url_path='change-password')
    def change_password(self, request, pk=None):
        user = self.get_object()
        serializer = ChangePasswordSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        if not user.check_password(serializer.validated_data['old_password']):
            raise ValidationError({'old_password': 'Invalid old password'})

        user.set_password(serializer.validated_data['new_password'])
        user.save(update_fields=['password_hash', 'updated_at'])
        logger.info("Password changed for user %s", user.pk)
        return Response({'message': 'Password updated'})
