from django.contrib import admin
from .models import Analysis


@admin.register(Analysis)
class AnalysisAdmin(admin.ModelAdmin):
	list_display = ("scan_id", "hostname", "status", "phase", "percentage", "trigger_type", "attempt", "created_at", "finished_at")
	list_filter = ("status", "trigger_type", "phase", "created_at")
	search_fields = ("scan_id", "hostname", "domain__url", "job_id")
	ordering = ("-created_at",)
	readonly_fields = ("scan_id", "job_id", "retry_of", "started_at", "finished_at", "created_at", "updated_at")
