"""Django admin configuration for field report models."""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.contrib.auth.models import User

from .models import ActivityLog, Profile


class ProfileInline(admin.StackedInline):
    """Allows editing of the Profile model on the same page as the User model."""
    model = Profile
    can_delete = False
    verbose_name_plural = 'profile'


class UserAdmin(BaseUserAdmin):
    """Extend the default User admin to include Profile fields."""
    inlines = (ProfileInline,)


@admin.register(ActivityLog)
class ActivityLogAdmin(admin.ModelAdmin):
    list_display = ('timestamp', 'user', 'action')
    list_filter = ('action',)
    search_fields = ('action', 'details')


admin.site.unregister(User)
admin.site.register(User, UserAdmin)
