from django.contrib import admin

from .models import Resort, RoomType, Room, RoomDetail, User, Booking, Payment, Discount


class RoomDetailInline(admin.StackedInline):
    model = RoomDetail
    can_delete = False


@admin.register(Room)
class RoomAdmin(admin.ModelAdmin):
    list_display = ("id", "resort", "room_type", "location", "status", "category")
    list_filter = ("status", "resort", "room_type")
    inlines = [RoomDetailInline]


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = ("booking_code", "user", "room", "check_in", "check_out", "total_amount", "status", "created_at")
    list_filter = ("status",)
    search_fields = ("booking_code", "user__username", "user__email")


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("transaction_code", "booking", "payment_method", "amount", "status", "paid_at")
    list_filter = ("status", "payment_method")
    search_fields = ("transaction_code", "booking__booking_code")


@admin.register(Discount)
class DiscountAdmin(admin.ModelAdmin):
    list_display = ("code", "discount_type", "value", "usage_used", "usage_limit", "valid_from", "valid_until", "status")
    list_filter = ("status", "discount_type")


admin.site.register(Resort)
admin.site.register(RoomType)


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ("username", "email", "full_name", "role", "is_active", "created_at")
    list_filter = ("role", "is_active")
    search_fields = ("username", "email", "full_name")
    exclude = ("password_hash",)
