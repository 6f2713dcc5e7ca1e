from django.urls import path
from . import views

urlpatterns = [
	path("", views.domains_list, name="domains_list"),
	path("<uuid:id>/", views.domain_detail, name="domain_detail"),
	path("<uuid:id>/schedule/", views.domain_schedule, name="domain_schedule"),
]
