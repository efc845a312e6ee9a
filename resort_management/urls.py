from rest_framework.routers import DefaultRouter
from resort_management.views import (
    ResortViewSet, RoomTypeViewSet, RoomViewSet, BookingViewSet, PaymentViewSet, DiscountViewSet, UserViewSet,
)

router = DefaultRouter(trailing_slash=False)
router.register(r'resorts', ResortViewSet)
router.register(r'room-types', RoomTypeViewSet)
router.register(r'rooms', RoomViewSet)
router.register(r'bookings', BookingViewSet, basename='booking')
router.register(r'payments', PaymentViewSet, basename='payment')
router.register(r'discounts', DiscountViewSet, basename='discount')
router.register(r'users', UserViewSet, basename='user')

urlpatterns = router.urls
