"""Data models for the field reports application.

Field reports themselves are owned by the external sheet store and are never
written to this database.  The models here only cover what the web front end
needs locally: which users may approve reports and an audit trail of the
saves and approval changes they dispatched.
"""

from __future__ import annotations

from django.contrib.auth.models import User
from django.db import models


class Profile(models.Model):
    """Additional information associated with a Django auth User.

    ``is_reviewer`` grants the approval rights of the review screens (bulk
    approve / reject and per-record status edits).  Superusers always have
    them.
    """

    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='profile')
    is_reviewer = models.BooleanField(default=False)

    def __str__(self) -> str:  # pragma: no cover
        return f"Profile<{self.user.username}>"


class ActivityLog(models.Model):
    """Tracks user actions within the application.

    Each entry records the user who performed the action, a short description,
    optional details and the timestamp.  Entries are written when a request is
    dispatched to the store, not when the store confirms it.
    """

    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='activity_logs')
    action = models.CharField(max_length=255)
    details = models.TextField(blank=True, null=True)
    timestamp = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-timestamp']

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.timestamp:%Y-%m-%d %H:%M:%S} - {self.user}: {self.action}"
