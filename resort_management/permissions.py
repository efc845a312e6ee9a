from rest_framework import permissions


def has_staff_role(user):
    return bool(user and user.is_authenticated and getattr(user, "has_staff_role", False))


class IsStaffRole(permissions.BasePermission):
    message = "Staff role required."

    def has_permission(self, request, view):
        return has_staff_role(request.user)


class IsStaffOrReadOnly(permissions.BasePermission):
    message = "Staff role required."

    def has_permission(self, request, view):
        if request.method in permissions.SAFE_METHODS:
            return True
        return has_staff_role(request.user)


class IsSelfOrStaff(permissions.BasePermission):
    message = "You can only access your own account."

    def has_object_permission(self, request, view, obj):
        return has_staff_role(request.user) or obj.pk == request.user.pk


class IsOwnerOrStaff(permissions.BasePermission):
    message = "You do not have access to this resource."

    def has_object_permission(self, request, view, obj):
        return has_staff_role(request.user) or obj.user_id == request.user.pk
