from django.contrib import admin

from .models import OtpRecord


@admin.register(OtpRecord)
class OtpRecordAdmin(admin.ModelAdmin):
    # 감사 기록용: 코드는 보여주지 않고 수정도 막는다
    list_display = (
        "id",
        "phone_number",
        "purpose",
        "created_at",
        "expires_at",
        "attempts",
        "max_attempts",
        "is_used",
        "used_at",
    )
    list_filter = ("purpose", "is_used")
    search_fields = ("phone_number",)
    ordering = ("-created_at",)
    exclude = ("code",)

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
