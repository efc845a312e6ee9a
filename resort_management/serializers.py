import logging
from decimal import Decimal

from rest_framework import serializers
from rest_framework.exceptions import NotFound
from django.db import transaction, IntegrityError
from .exceptions import Conflict
from .models import (
    DISCOUNT_USAGE_CONSTRAINT, Resort, RoomType, Room, RoomDetail, User, Booking, Payment, Discount,
)

logger = logging.getLogger(__name__)

# DD/MM/YYYY is what the booking forms send; ISO dates are accepted too
DATE_INPUT_FORMATS = ["%d/%m/%Y", "iso-8601"]
MONEY = dict(max_digits=12, decimal_places=2)


class ResortSerializer(serializers.ModelSerializer):
    room_count = serializers.IntegerField(source="rooms.count", read_only=True)

    class Meta:
        model = Resort
        fields = '__all__'


class RoomTypeSerializer(serializers.ModelSerializer):

    class Meta:
        model = RoomType
        fields = '__all__'


class RoomDetailSerializer(serializers.ModelSerializer):

    class Meta:
        model = RoomDetail
        fields = ["description", "features", "images_url", "num_bed", "price_per_night"]


class RoomSerializer(serializers.ModelSerializer):
    detail = RoomDetailSerializer(required=False)
    resort_name = serializers.CharField(source="resort.name", read_only=True)
    room_type_name = serializers.CharField(source="room_type.name", read_only=True)
    default_price = serializers.DecimalField(source="room_type.price_per_night", read_only=True, **MONEY)
    actual_price = serializers.DecimalField(read_only=True, **MONEY)

    class Meta:
        model = Room
        fields = [
            "id", "resort", "resort_name", "room_type", "room_type_name", "location", "address",
            "status", "category", "default_price", "actual_price", "detail", "created_at", "updated_at",
        ]
        read_only_fields = ["created_at", "updated_at"]

    def create(self, validated):
        detail_data = validated.pop("detail", {})
        # Room and its detail row are written together or not at all
        with transaction.atomic():
            room = Room.objects.create(**validated)
            RoomDetail.objects.create(room=room, **detail_data)
        logger.info("Room %s created in resort %s", room.pk, room.resort_id)
        return room

    def update(self, instance, validated_data):
        detail_data = validated_data.pop("detail", None)

        with transaction.atomic():
            instance = Room.objects.select_for_update().get(pk=instance.pk)
            for attr, value in validated_data.items():
                setattr(instance, attr, value)
            instance.save()

            if detail_data is not None:
                RoomDetail.objects.update_or_create(room=instance, defaults=detail_data)

        return instance


class UserSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True, required=False, min_length=6, trim_whitespace=False)

    class Meta:
        model = User
        fields = [
            "id", "username", "email", "full_name", "phone", "role", "is_active", "password",
            "created_at", "updated_at",
        ]
        read_only_fields = ["created_at", "updated_at"]
        extra_kwargs = {"full_name": {"required": True, "allow_blank": False}}

    def validate(self, data):
        if self.instance is None and not data.get("password"):
            raise serializers.ValidationError({"password": "This field is required."})
        if self.instance is not None and "password" in data:
            raise serializers.ValidationError({"password": "Use change-password to set a new password."})
        return data

    def create(self, validated):
        password = validated.pop("password")
        user = User(**validated)
        user.set_password(password)
        user.save()
        logger.info("User %s created with role %s", user.username, user.role)
        return user


class ChangePasswordSerializer(serializers.Serializer):
    old_password = serializers.CharField(trim_whitespace=False)
    new_password = serializers.CharField(min_length=6, trim_whitespace=False)


class BookingSerializer(serializers.ModelSerializer):
    room_location = serializers.CharField(source="room.location", read_only=True)
    resort_name = serializers.CharField(source="room.resort.name", read_only=True)
    nights = serializers.IntegerField(read_only=True)

    class Meta:
        model = Booking
        fields = '__all__'

    def to_representation(self, instance):
        data = super().to_representation(instance)
        # payments are prefetched by the booking views; pick the latest here
        payment = max(instance.payments.all(), key=lambda p: p.transaction_date, default=None)
        data['payment_status'] = payment.status if payment else None
        return data


class BookingCreateSerializer(serializers.Serializer):
    roomId = serializers.PrimaryKeyRelatedField(source="room", queryset=Room.objects.all())
    checkIn = serializers.DateField(source="check_in", input_formats=DATE_INPUT_FORMATS)
    checkOut = serializers.DateField(source="check_out", input_formats=DATE_INPUT_FORMATS)
    pricePerNight = serializers.DecimalField(source="nightly_rate", min_value=Decimal("0.01"), **MONEY)

    def validate(self, data):
        if data['check_out'] < data['check_in']:
            raise serializers.ValidationError("checkOut must not be before checkIn")
        return data

    def create(self, validated):
        nights, total = Booking.quote(validated['check_in'], validated['check_out'], validated['nightly_rate'])
        booking = Booking.objects.create(
            user=self.context['request'].user,
            room=validated['room'],
            check_in=validated['check_in'],
            check_out=validated['check_out'],
            nightly_rate=validated['nightly_rate'],
            total_amount=total,
            status=Booking.Status.PENDING,
        )
        logger.info("Booking %s created: room=%s nights=%s total=%s",
                    booking.booking_code, booking.room_id, nights, total)
        return booking


class BookingStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[
        Booking.Status.CONFIRMED,
        Booking.Status.CANCELLED,
        Booking.Status.CHECKED_IN,
        Booking.Status.CHECKED_OUT,
    ])


class DiscountSerializer(serializers.ModelSerializer):

    class Meta:
        model = Discount
        fields = '__all__'
        read_only_fields = ["usage_used", "created_at", "updated_at"]

    def validate(self, data):
        def current(field):
            if field in data:
                return data[field]
            return getattr(self.instance, field, None)

        if current('discount_type') == Discount.Type.PERCENT and (current('value') or 0) > 100:
            raise serializers.ValidationError("A percent discount cannot exceed 100")

        valid_from, valid_until = current('valid_from'), current('valid_until')
        if valid_from and valid_until and valid_until < valid_from:
            raise serializers.ValidationError("valid_until must not be before valid_from")

        usage_limit = current('usage_limit')
        if self.instance and usage_limit is not None and usage_limit < self.instance.usage_used:
            raise serializers.ValidationError("usage_limit cannot be lower than the uses already made")
        return data


class PaymentSerializer(serializers.ModelSerializer):
    booking_code = serializers.CharField(source="booking.booking_code", read_only=True)
    discount_code = serializers.CharField(source="discount.code", read_only=True, default=None)

    class Meta:
        model = Payment
        fields = '__all__'


class PaymentCreateSerializer(serializers.Serializer):
    bookingId = serializers.IntegerField(source="booking_id", min_value=1)
    paymentMethod = serializers.ChoiceField(source="payment_method", choices=Payment.Method.choices)
    amount = serializers.DecimalField(min_value=Decimal("0.01"), **MONEY)
    discountCode = serializers.CharField(source="discount_code", required=False, allow_blank=True, allow_null=True)

    def create(self, validated):
        """Charge a booking: discount usage, payment row and booking status commit together."""
        user = self.context['request'].user

        try:
            with transaction.atomic():
                booking = (Booking.objects.select_for_update()
                           .filter(pk=validated['booking_id'], user=user).first())
                if booking is None:
                    raise NotFound("Booking not found or it does not belong to you.")

                if booking.payments.filter(status=Payment.Status.COMPLETED).exists():
                    raise Conflict("This booking has already been paid.")

                if booking.status not in Booking.PAYABLE:
                    raise serializers.ValidationError(f"A {booking.status} booking cannot be paid.")

                amount = validated['amount']
                discount = None
                code = validated.get('discount_code')
                if code:
                    discount = Discount.objects.select_for_update().redeemable().filter(code=code).first()
                    if discount is not None:
                        if discount.is_exhausted:
                            raise serializers.ValidationError("This discount code has no uses left.")
                        amount = discount.apply(amount)
                        discount.redeem()
                    else:
                        logger.info("Discount code %r is unknown or not redeemable; charging full amount", code)

                payment = Payment.objects.create(
                    booking=booking,
                    user=user,
                    payment_method=validated['payment_method'],
                    amount=amount,
                    discount=discount,
                    status=Payment.Status.PENDING,
                )
                # no external gateway: settlement is immediate
                payment.complete()
                booking.set_status(Booking.Status.CONFIRMED)
        except IntegrityError as e:
            if DISCOUNT_USAGE_CONSTRAINT in str(e):
                logger.warning("Discount %r over its usage limit; payment for booking %s rejected",
                               validated.get('discount_code'), validated['booking_id'])
                raise serializers.ValidationError("This discount code has no uses left.")
            logger.warning("Concurrent payment rejected for booking %s", validated['booking_id'])
            raise Conflict("This booking has already been paid.")

        logger.info("Payment %s completed for booking %s: amount=%s discount=%s",
                    payment.transaction_code, booking.booking_code, payment.amount,
                    discount.code if discount else None)
        return payment


class RefundSerializer(serializers.Serializer):
    refundAmount = serializers.DecimalField(source="refund_amount", min_value=Decimal("0.01"), **MONEY)
    reason = serializers.CharField(required=False, allow_blank=True, allow_null=True)
