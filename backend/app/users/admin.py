from django.contrib import admin

from .models import User


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ("id", "phone_number", "name", "email", "role", "is_phone_verified", "is_active")
    list_filter = ("role", "is_phone_verified", "is_active")
    search_fields = ("phone_number", "name", "email")
    ordering = ("id",)
