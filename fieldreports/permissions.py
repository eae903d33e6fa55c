"""Who may change the approval status of field reports."""

from __future__ import annotations

from django.contrib.auth.models import User


def user_is_reviewer(user: User) -> bool:
    if getattr(user, 'is_superuser', False):
        return True
    profile = getattr(user, 'profile', None)
    return bool(profile and profile.is_reviewer)
