# domains/models.py
import uuid
from urllib.parse import urlparse

from django.conf import settings
from django.db import models


class Domain(models.Model):
	FREQUENCY_CHOICES = [
		('daily', 'Daily'),
		('weekly', 'Weekly'),
		('monthly', 'Monthly'),
	]

	id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
	url = models.URLField(max_length=500)
	created_at = models.DateTimeField(auto_now_add=True)
	updated_at = models.DateTimeField(auto_now=True)
	last_analysis_at = models.DateTimeField(null=True, blank=True)
	user = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL)

	# Unattended analyses (picked up by Celery Beat)
	auto_analysis_enabled = models.BooleanField(default=False)
	analysis_frequency = models.CharField(max_length=10, choices=FREQUENCY_CHOICES, default='weekly')
	analysis_config = models.JSONField(default=dict, blank=True)

	def __str__(self):
		return self.url

	@property
	def hostname(self) -> str:
		"""Bare host of the domain URL, e.g. ``example.com``."""
		url = self.url if self.url.startswith(("http://", "https://")) else f"https://{self.url}"
		return (urlparse(url).hostname or "").lower()
