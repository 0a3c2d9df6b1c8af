from django.contrib.auth import get_user_model
from django.contrib.auth.backends import BaseBackend

from .models import Guest


class GuestPhoneBackend(BaseBackend):
    """
    Sign a checked-in guest in with their phone number as the username and
    their room number as the password.

    Only active guests that still hold a room can authenticate, so a guest's
    login stops working at checkout.
    """

    def authenticate(self, request, username=None, password=None, **kwargs):
        if not username or not password:
            return None

        guest = Guest.objects.select_related('user', 'room').filter(
            phone=username, is_active=True
        ).first()
        if guest is None or guest.user is None or guest.room is None:
            return None
        if guest.room.room_number != password:
            return None
        return guest.user

    def get_user(self, user_id):
        User = get_user_model()
        try:
            return User.objects.get(pk=user_id)
        except User.DoesNotExist:
            return None
