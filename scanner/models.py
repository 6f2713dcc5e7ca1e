import secrets
import time
import uuid
from datetime import timedelta

from django.conf import settings
from django.db import models, transaction
from django.utils import timezone

from domains.models import Domain
from scanner import lifecycle
from scanner.exceptions import InvalidTransition

SIGNAL_FIELDS = (
	"cookies",
	"scripts",
	"technologies",
	"consent_management",
	"local_storage",
	"session_storage",
	"network_requests",
	"tracking_pixels",
	"forms",
	"iframes",
	"discovered_urls",
)

EVENT_TARGETS = {
	lifecycle.START: lifecycle.RUNNING,
	lifecycle.COMPLETE: lifecycle.COMPLETED,
	lifecycle.FAIL: lifecycle.FAILED,
	lifecycle.CANCEL: lifecycle.CANCELLED,
}


def _base36(n: int) -> str:
	chars = "0123456789abcdefghijklmnopqrstuvwxyz"
	out = ""
	while n:
		n, r = divmod(n, 36)
		out = chars[r] + out
	return out or "0"


def generate_scan_id() -> str:
	return f"scan_{_base36(int(time.time() * 1000))}_{secrets.token_hex(5)[:9]}"


def default_consent():
	return {"detected": False, "platforms": [], "consent_string": None}


class AnalysisQuerySet(models.QuerySet):
	def for_domain(self, domain_id):
		return self.filter(domain_id=domain_id)

	def active_for_domain(self, domain_id):
		"""Oldest pending/running analysis for the domain, or None."""
		return (
			self.for_domain(domain_id)
			.filter(status__in=lifecycle.ACTIVE)
			.order_by("created_at")
			.first()
		)

	def last_completed(self, domain_id, exclude=None):
		qs = self.for_domain(domain_id).filter(status=Analysis.Status.COMPLETED)
		if exclude is not None:
			qs = qs.exclude(pk=exclude)
		return qs.order_by("-finished_at").first()

	def trends(self, domain_id, days: int = 30) -> list:
		since = timezone.now() - timedelta(days=days)
		rows = (
			self.for_domain(domain_id)
			.filter(status=Analysis.Status.COMPLETED, finished_at__gte=since)
			.order_by("finished_at")
			.values("finished_at", "statistics")
		)
		out = []
		for row in rows:
			stats = row["statistics"] or {}
			out.append({
				"date": row["finished_at"],
				"total_cookies": stats.get("total_cookies", 0),
				"first_party_cookies": stats.get("first_party_cookies", 0),
				"third_party_cookies": stats.get("third_party_cookies", 0),
				"compliance_score": (stats.get("compliance_score") or {}).get("overall"),
			})
		return out


class Analysis(models.Model):
	class Status(models.TextChoices):
		PENDING = lifecycle.PENDING, 'Pending'
		RUNNING = lifecycle.RUNNING, 'Running'
		COMPLETED = lifecycle.COMPLETED, 'Completed'
		FAILED = lifecycle.FAILED, 'Failed'
		CANCELLED = lifecycle.CANCELLED, 'Cancelled'

	class TriggerType(models.TextChoices):
		MANUAL = 'manual', 'Manual'
		SCHEDULED = 'scheduled', 'Scheduled'
		API = 'api', 'API'

	id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
	scan_id = models.CharField(max_length=64, unique=True, default=generate_scan_id, editable=False)
	domain = models.ForeignKey(Domain, on_delete=models.CASCADE, related_name="analyses")
	hostname = models.CharField(max_length=255)
	status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING, db_index=True)
	config = models.JSONField(default=dict)

	trigger_type = models.CharField(max_length=20, choices=TriggerType.choices, default=TriggerType.MANUAL)
	triggered_by = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL)
	attempt = models.PositiveSmallIntegerField(default=1)
	retry_of = models.ForeignKey("self", null=True, blank=True, on_delete=models.SET_NULL, related_name="retries")
	job_id = models.CharField(max_length=255, blank=True, default="")
	priority = models.PositiveSmallIntegerField(default=5)

	# progress
	phase = models.CharField(max_length=20, default="initialization")
	step = models.CharField(max_length=500, blank=True, default="")
	percentage = models.PositiveSmallIntegerField(default=0)
	current_url = models.URLField(max_length=2000, blank=True, default="")
	urls_discovered = models.PositiveIntegerField(default=0)
	urls_analyzed = models.PositiveIntegerField(default=0)
	urls_total = models.PositiveIntegerField(default=0)
	errors = models.JSONField(default=list, blank=True)
	estimated_seconds_remaining = models.FloatField(null=True, blank=True)
	started_at = models.DateTimeField(null=True, blank=True)
	finished_at = models.DateTimeField(null=True, blank=True)

	# collected signals
	cookies = models.JSONField(default=list, blank=True)
	scripts = models.JSONField(default=list, blank=True)
	technologies = models.JSONField(default=list, blank=True)
	consent_management = models.JSONField(default=default_consent, blank=True)
	local_storage = models.JSONField(default=list, blank=True)
	session_storage = models.JSONField(default=list, blank=True)
	network_requests = models.JSONField(default=list, blank=True)
	tracking_pixels = models.JSONField(default=list, blank=True)
	forms = models.JSONField(default=list, blank=True)
	iframes = models.JSONField(default=list, blank=True)
	discovered_urls = models.JSONField(default=list, blank=True)

	# derived
	statistics = models.JSONField(default=dict, blank=True)
	changes = models.JSONField(default=dict, blank=True)
	recommendations = models.JSONField(default=list, blank=True)

	created_at = models.DateTimeField(auto_now_add=True)
	updated_at = models.DateTimeField(auto_now=True)

	objects = AnalysisQuerySet.as_manager()

	class Meta:
		ordering = ["-created_at"]
		indexes = [
			models.Index(fields=["domain", "status"]),
			models.Index(fields=["domain", "-finished_at"]),
		]

	def __str__(self):
		return f"{self.scan_id} ({self.hostname}, {self.status})"

	@property
	def is_active(self) -> bool:
		return self.status in lifecycle.ACTIVE

	@property
	def is_terminal(self) -> bool:
		return lifecycle.is_terminal(self.status)

	@property
	def duration_seconds(self) -> float | None:
		if not self.started_at:
			return None
		end = self.finished_at or timezone.now()
		return (end - self.started_at).total_seconds()

	def is_stale(self, now=None) -> bool:
		"""Active for longer than the stale-lease window."""
		now = now or timezone.now()
		since = self.started_at or self.created_at
		return since is not None and (now - since).total_seconds() > settings.ANALYSIS["STALE_LEASE_SECONDS"]

	def _live(self):
		return Analysis.objects.filter(pk=self.pk, status__in=lifecycle.ACTIVE)

	def transition(self, event: str, **fields) -> str:
		"""
		Apply a lifecycle event with a compare-and-set on the stored status.

		A concurrent writer (e.g. a user cancelling while the worker
		completes) can only win once; the loser gets ``InvalidTransition``.
		"""
		target = EVENT_TARGETS.get(event)
		allowed = lifecycle.sources_for(event)
		if target is None or not allowed:
			raise InvalidTransition(self.status, event)

		now = timezone.now()
		if event == lifecycle.START:
			fields.setdefault("started_at", now)
		elif target in lifecycle.TERMINAL:
			fields.setdefault("finished_at", now)
			fields["estimated_seconds_remaining"] = 0 if target == lifecycle.COMPLETED else None
		if target == lifecycle.COMPLETED:
			fields["percentage"] = 100

		updated = Analysis.objects.filter(pk=self.pk, status__in=allowed).update(
			status=target, updated_at=now, **fields
		)
		if not updated:
			self.refresh_from_db(fields=["status"])
			raise InvalidTransition(self.status, event)

		self.status = target
		for name, value in fields.items():
			setattr(self, name, value)
		return target

	def update_progress(self, phase: str, step: str, percentage: int, url: str | None = None, **extra) -> bool:
		"""
		Atomically persist progress. Percent never goes backwards, and the
		remaining time is extrapolated from elapsed time once past 5%.
		"""
		now = timezone.now()
		with transaction.atomic():
			row = self._live().select_for_update().values("percentage", "started_at").first()
			if row is None:
				return False
			pct = max(row["percentage"], min(int(percentage), 100))
			values = {"phase": phase, "step": step[:500], "percentage": pct, "updated_at": now, **extra}
			if url:
				values["current_url"] = url[:2000]
			started = row["started_at"]
			if started and pct > 5:
				elapsed = (now - started).total_seconds()
				values["estimated_seconds_remaining"] = max(0.0, (elapsed / pct) * 100 - elapsed)
			self._live().update(**values)
		for name, value in values.items():
			setattr(self, name, value)
		return True

	def add_error(self, url: str, error) -> bool:
		entry = {
			"url": url,
			"error": str(error),
			"timestamp": timezone.now().isoformat(),
		}
		with transaction.atomic():
			row = self._live().select_for_update().values("errors").first()
			if row is None:
				return False
			errors = list(row["errors"] or []) + [entry]
			self._live().update(errors=errors, updated_at=timezone.now())
		self.errors = errors
		return True

	def save_signals(self, **signals) -> bool:
		"""Persist collected signal lists while the run is still active."""
		unknown = set(signals) - set(SIGNAL_FIELDS) - {"urls_analyzed", "urls_discovered", "urls_total"}
		if unknown:
			raise ValueError(f"Not signal fields: {sorted(unknown)}")
		updated = self._live().update(updated_at=timezone.now(), **signals)
		if updated:
			for name, value in signals.items():
				setattr(self, name, value)
		return bool(updated)

	def realtime_metrics(self) -> dict:
		metrics = {"cookies_per_minute": 0, "urls_per_minute": 0, "error_rate": 0}
		elapsed = self.duration_seconds
		if elapsed:
			minutes = elapsed / 60
			metrics["cookies_per_minute"] = round(len(self.cookies) / minutes)
			metrics["urls_per_minute"] = round(self.urls_analyzed / minutes)
			metrics["error_rate"] = len(self.errors) / max(self.urls_analyzed, 1)
		return metrics

	def progress(self) -> dict:
		return {
			"phase": self.phase,
			"step": self.step,
			"percentage": self.percentage,
			"current_url": self.current_url,
			"urls_discovered": self.urls_discovered,
			"urls_analyzed": self.urls_analyzed,
			"urls_total": self.urls_total,
			"errors": self.errors,
			"estimated_seconds_remaining": self.estimated_seconds_remaining,
			"started_at": self.started_at,
			"finished_at": self.finished_at,
		}
