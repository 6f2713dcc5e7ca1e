from django.contrib import admin
from .models import Domain


@admin.register(Domain)
class DomainAdmin(admin.ModelAdmin):
	list_display = ("url", "user", "auto_analysis_enabled", "analysis_frequency", "last_analysis_at", "created_at")
	list_filter = ("auto_analysis_enabled", "analysis_frequency", "last_analysis_at")
	search_fields = ("url", "user__email", "user__username")
	ordering = ("-created_at",)
	readonly_fields = ("created_at", "updated_at", "last_analysis_at")
