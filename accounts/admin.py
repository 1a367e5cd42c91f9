from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as DjangoUserAdmin

from .models import User


@admin.register(User)
class UserAdmin(DjangoUserAdmin):
    model = User
    list_display = ("email", "full_name", "phone", "is_system_admin", "is_staff", "is_active")
    list_filter = ("is_system_admin", "is_staff", "is_active")
    fieldsets = (
        (None, {"fields": ("email", "password")}),
        ("Personal info", {"fields": ("full_name", "phone", "avatar_url")}),
        ("Permissions", {"fields": ("is_active", "is_staff", "is_superuser", "is_system_admin", "groups", "user_permissions")}),
        ("Important dates", {"fields": ("last_login", "date_joined")}),
    )
    add_fieldsets = (
        (
            None,
            {
                "classes": ("wide",),
                "fields": ("email", "full_name", "password1", "password2", "is_staff", "is_system_admin"),
            },
        ),
    )
    search_fields = ("email", "full_name")
    ordering = ("email",)
