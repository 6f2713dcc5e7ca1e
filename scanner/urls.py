from django.urls import path
from .views import (
	domain_analyses, analysis_status, cancel_analysis, analysis_results,
	analysis_compliance, compare_analyses, analysis_trends, export_analysis_csv,
)

urlpatterns = [
	path("domains/<uuid:domain_id>/analyses/", domain_analyses, name="domain_analyses"),
	path("domains/<uuid:domain_id>/analyses/trends/", analysis_trends, name="analysis_trends"),
	path("analyses/<uuid:analysis_id>/", analysis_results, name="analysis_results"),
	path("analyses/<uuid:analysis_id>/status/", analysis_status, name="analysis_status"),
	path("analyses/<uuid:analysis_id>/cancel/", cancel_analysis, name="cancel_analysis"),
	path("analyses/<uuid:analysis_id>/compliance/", analysis_compliance, name="analysis_compliance"),
	path("analyses/<uuid:analysis_id>/export/", export_analysis_csv, name="export_analysis_csv"),
	path("analyses/<uuid:first_id>/compare/<uuid:second_id>/", compare_analyses, name="compare_analyses"),
]
