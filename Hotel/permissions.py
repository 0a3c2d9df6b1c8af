from rest_framework.permissions import BasePermission

GUEST = 'GUEST'
STAFF = 'STAFF'
ADMIN = 'ADMIN'


def get_role(user):
    """Resolve the caller's role: ADMIN, STAFF, GUEST or None."""
    if user is None or not user.is_authenticated:
        return None
    if user.is_superuser:
        return ADMIN
    if user.is_staff:
        return STAFF
    guest = getattr(user, 'guest_profile', None)
    if guest is not None and guest.is_active:
        return GUEST
    return None


def get_guest(user):
    if get_role(user) == GUEST:
        return user.guest_profile
    return None


def is_staff_role(user):
    return get_role(user) in (STAFF, ADMIN)


class IsGuest(BasePermission):
    message = 'Only guests can perform this action'

    def has_permission(self, request, view):
        return get_role(request.user) == GUEST


class IsStaff(BasePermission):
    message = 'Staff access required'

    def has_permission(self, request, view):
        return is_staff_role(request.user)


class IsAdmin(BasePermission):
    message = 'Admin only'

    def has_permission(self, request, view):
        return get_role(request.user) == ADMIN


class IsStaffOrReadOnly(BasePermission):
    message = 'Staff access required'

    def has_permission(self, request, view):
        if request.method in ('GET', 'HEAD', 'OPTIONS'):
            return get_role(request.user) is not None
        return is_staff_role(request.user)


class IsOwnerOrStaff(BasePermission):
    """Staff see everything; a guest only objects whose ``guest`` is them."""
    message = 'You can only access your own records'

    def has_permission(self, request, view):
        return get_role(request.user) is not None

    def has_object_permission(self, request, view, obj):
        if is_staff_role(request.user):
            return True
        guest = get_guest(request.user)
        return guest is not None and obj.guest_id == guest.pk
