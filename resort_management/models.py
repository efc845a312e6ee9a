import uuid
from decimal import Decimal, ROUND_HALF_UP

from django.contrib.auth.hashers import check_password, make_password
from django.db import models
from django.db.models import F, Q
from django.core.validators import MinValueValidator
from django.utils import timezone

CENTS = Decimal("0.01")
DISCOUNT_USAGE_CONSTRAINT = "discount_usage_within_limit"


def generate_booking_code():
    return f"BK{timezone.now():%y%m%d}{uuid.uuid4().hex[:8].upper()}"


def generate_transaction_code():
    return f"TX{timezone.now():%y%m%d%H%M}{uuid.uuid4().hex[:10].upper()}"


class Resort(models.Model):
    name = models.CharField(max_length=150, unique=True)
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "resorts"

    def __str__(self):
        return self.name


class RoomType(models.Model):
    name = models.CharField(max_length=100, unique=True)
    price_per_night = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(0)])

    class Meta:
        db_table = "room_types"

    def __str__(self):
        return self.name


class Room(models.Model):
    class Status(models.TextChoices):
        AVAILABLE = "available"
        RESERVED = "reserved"
        OCCUPIED = "occupied"
        MAINTENANCE = "maintenance"

    resort = models.ForeignKey(Resort, on_delete=models.PROTECT, related_name="rooms")
    room_type = models.ForeignKey(RoomType, on_delete=models.PROTECT, related_name="rooms")
    location = models.CharField(max_length=255)
    address = models.CharField(max_length=255, blank=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.AVAILABLE)
    category = models.CharField(max_length=50, default="standard")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "rooms"

    def __str__(self):
        return f"{self.resort_id}:{self.location} [{self.status}]"

    @property
    def actual_price(self):
        """Nightly price, preferring the per-room override from the detail row."""
        detail = getattr(self, "detail", None)
        if detail is not None and detail.price_per_night is not None:
            return detail.price_per_night
        return self.room_type.price_per_night


class RoomDetail(models.Model):
    room = models.OneToOneField(Room, on_delete=models.CASCADE, related_name="detail")
    description = models.TextField(blank=True)
    features = models.JSONField(default=list, blank=True)
    images_url = models.JSONField(default=list, blank=True)
    num_bed = models.CharField(max_length=50, blank=True)
    price_per_night = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True,
                                          validators=[MinValueValidator(0)])
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "room_details"


class User(models.Model):
    class Role(models.TextChoices):
        ADMIN = "admin"
        MANAGER = "manager"
        STAFF = "staff"
        GUEST = "guest"

    STAFF_ROLES = {Role.ADMIN, Role.MANAGER, Role.STAFF}

    username = models.CharField(max_length=150, unique=True)
    email = models.EmailField(unique=True)
    full_name = models.CharField(max_length=150, blank=True)
    phone = models.CharField(max_length=50, blank=True)
    role = models.CharField(max_length=20, choices=Role.choices, default=Role.GUEST)
    is_active = models.BooleanField(default=True)
    password_hash = models.CharField(max_length=128, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "users"

    def __str__(self):
        return self.username

    def set_password(self, raw_password):
        self.password_hash = make_password(raw_password)

    def check_password(self, raw_password):
        if not self.password_hash:
            return False
        return check_password(raw_password, self.password_hash)

    @property
    def is_authenticated(self):
        return True

    @property
    def is_anonymous(self):
        return False

    @property
    def has_staff_role(self):
        return self.role in self.STAFF_ROLES


class Booking(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending"
        CONFIRMED = "confirmed"
        CANCELLED = "cancelled"
        CHECKED_IN = "checked_in"
        CHECKED_OUT = "checked_out"
        COMPLETED = "completed"

    CANCELLABLE = {Status.PENDING, Status.CONFIRMED}
    PAYABLE = {Status.PENDING, Status.CONFIRMED}
    TRANSITIONS = {
        Status.PENDING: {Status.CONFIRMED, Status.CANCELLED},
        Status.CONFIRMED: {Status.CHECKED_IN, Status.CANCELLED},
        Status.CHECKED_IN: {Status.CHECKED_OUT},
    }
    # a refund cancels the stay only while it has not ended
    REFUND_CANCELLABLE = {Status.PENDING, Status.CONFIRMED, Status.CHECKED_IN}
    # room.status follows the booking through these states
    ROOM_STATUS = {
        Status.CONFIRMED: Room.Status.RESERVED,
        Status.CANCELLED: Room.Status.AVAILABLE,
        Status.CHECKED_IN: Room.Status.OCCUPIED,
        Status.CHECKED_OUT: Room.Status.AVAILABLE,
    }

    booking_code = models.CharField(max_length=20, unique=True, editable=False, default=generate_booking_code)
    user = models.ForeignKey(User, on_delete=models.PROTECT, related_name="bookings")
    room = models.ForeignKey(Room, on_delete=models.PROTECT, related_name="bookings")
    check_in = models.DateField()
    check_out = models.DateField()
    nightly_rate = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(0)])
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(0)])
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "bookings"
        indexes = [
            models.Index(fields=["user", "status"], name="bookings_user_status_idx"),
            models.Index(fields=["room", "status"], name="bookings_room_status_idx"),
        ]

    def __str__(self):
        return f"{self.booking_code} [{self.status}]"

    @staticmethod
    def nights_between(check_in, check_out):
        # dates are day-granular so the day difference is already its own ceiling
        return max(1, (check_out - check_in).days)

    @classmethod
    def quote(cls, check_in, check_out, nightly_rate):
        """Return (nights, total_amount) for a stay."""
        nights = cls.nights_between(check_in, check_out)
        return nights, (Decimal(nightly_rate) * nights).quantize(CENTS, rounding=ROUND_HALF_UP)

    @property
    def nights(self):
        return self.nights_between(self.check_in, self.check_out)

    def can_transition_to(self, status):
        return status in self.TRANSITIONS.get(self.status, ())

    def cancellation_deadline(self, window):
        return self.created_at + window

    def room_status_from_bookings(self):
        """Room status implied by every booking that still holds the room.

        A checked-in guest keeps it occupied and a confirmed stay keeps it
        reserved, so releasing one booking never frees a room another
        booking is using.
        """
        held = set(
            Booking.objects.filter(
                room_id=self.room_id,
                status__in=[self.Status.CHECKED_IN, self.Status.CONFIRMED],
            ).values_list("status", flat=True)
        )
        if self.Status.CHECKED_IN in held:
            return Room.Status.OCCUPIED
        if self.Status.CONFIRMED in held:
            return Room.Status.RESERVED
        return Room.Status.AVAILABLE

    def set_status(self, status):
        """Persist a new status and move the room to the matching state.

        Must run inside the caller's transaction so that the booking and
        room rows change together. Returns the room status written, or
        None when the booking status does not touch the room.
        """
        self.status = status
        self.save(update_fields=["status", "updated_at"])
        if status not in self.ROOM_STATUS:
            return None
        room_status = self.room_status_from_bookings()
        Room.objects.filter(pk=self.room_id).update(status=room_status, updated_at=timezone.now())
        return room_status


class DiscountQuerySet(models.QuerySet):
    def redeemable(self, now=None):
        now = now or timezone.now()
        return self.filter(status=Discount.Status.ACTIVE, valid_from__lte=now, valid_until__gte=now)


class Discount(models.Model):
    class Type(models.TextChoices):
        PERCENT = "percent"
        FIXED = "fixed"

    class Status(models.TextChoices):
        ACTIVE = "active"
        INACTIVE = "inactive"

    code = models.CharField(max_length=50, unique=True)
    name = models.CharField(max_length=150)
    description = models.TextField(blank=True)
    discount_type = models.CharField(max_length=10, choices=Type.choices)
    value = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(0)])
    valid_from = models.DateTimeField()
    valid_until = models.DateTimeField()
    usage_limit = models.PositiveIntegerField(null=True, blank=True)
    usage_used = models.PositiveIntegerField(default=0)
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.ACTIVE)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = DiscountQuerySet.as_manager()

    class Meta:
        db_table = "discounts"
        constraints = [
            models.CheckConstraint(
                condition=Q(usage_limit__isnull=True) | Q(usage_used__lte=F("usage_limit")),
                name=DISCOUNT_USAGE_CONSTRAINT,
            ),
        ]

    def __str__(self):
        return self.code

    @property
    def is_exhausted(self):
        return self.usage_limit is not None and self.usage_used >= self.usage_limit

    def apply(self, amount):
        """Return the amount left to pay after this discount, rounded to cents."""
        amount = Decimal(amount)
        if self.discount_type == self.Type.PERCENT:
            discounted = amount - (amount * self.value / 100)
        else:
            discounted = max(Decimal("0"), amount - self.value)
        return discounted.quantize(CENTS, rounding=ROUND_HALF_UP)

    def redeem(self):
        Discount.objects.filter(pk=self.pk).update(usage_used=F("usage_used") + 1, updated_at=timezone.now())
        self.refresh_from_db(fields=["usage_used", "updated_at"])


class Payment(models.Model):
    class Method(models.TextChoices):
        CASH = "cash"
        CARD = "card"
        BANK_TRANSFER = "bank_transfer"
        E_WALLET = "e_wallet"

    class Status(models.TextChoices):
        PENDING = "pending"
        COMPLETED = "completed"
        REFUNDED = "refunded"

    transaction_code = models.CharField(max_length=24, unique=True, editable=False,
                                        default=generate_transaction_code)
    booking = models.ForeignKey(Booking, on_delete=models.PROTECT, related_name="payments")
    user = models.ForeignKey(User, on_delete=models.PROTECT, related_name="payments")
    payment_method = models.CharField(max_length=20, choices=Method.choices)
    amount = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(0)])
    discount = models.ForeignKey(Discount, on_delete=models.SET_NULL, null=True, blank=True,
                                 related_name="payments")
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.PENDING)
    transaction_date = models.DateTimeField(default=timezone.now)
    paid_at = models.DateTimeField(null=True, blank=True)
    refund_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)
    refund_reason = models.TextField(blank=True)

    class Meta:
        db_table = "payments"
        constraints = [
            models.UniqueConstraint(
                fields=["booking"],
                condition=Q(status="completed"),
                name="uq_completed_payment_per_booking",
            ),
        ]

    def __str__(self):
        return f"{self.transaction_code} → {self.booking_id} [{self.status}]"

    def complete(self):
        self.status = self.Status.COMPLETED
        self.paid_at = timezone.now()
        self.save(update_fields=["status", "paid_at"])

    def refund(self, amount, reason=""):
        self.status = self.Status.REFUNDED
        self.refund_amount = amount
        self.refund_reason = reason or ""
        self.refunded_at = timezone.now()
        self.save(update_fields=["status", "refund_amount", "refund_reason", "refunded_at"])
