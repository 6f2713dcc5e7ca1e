# scanner/jobs.py
"""
Job scheduler adapter over Celery.

``enqueue`` / ``cancel`` / ``status`` are the only calls the rest of the
project makes into the queue. Retry policy lives here as data: a run that
fails fatally is never reopened; instead a successor ``Analysis`` with
``attempt + 1`` is queued after an exponential backoff.
"""
import logging
from dataclasses import dataclass
from enum import IntEnum

from celery.result import AsyncResult
from celery.signals import task_failure, task_success
from django.conf import settings

log = logging.getLogger(__name__)

ANALYSIS_TASK = "scanner.tasks.run_analysis_task"


class Priority(IntEnum):
	LOW = 0
	NORMAL = 5
	HIGH = 9

	@classmethod
	def parse(cls, value) -> "Priority":
		if isinstance(value, cls):
			return value
		if isinstance(value, str):
			try:
				return cls[value.upper()]
			except KeyError:
				raise ValueError(f"Unknown priority '{value}'") from None
		return cls(int(value))

	@property
	def broker_priority(self) -> int:
		# the redis transport serves 0 first
		return 9 - int(self)


@dataclass(frozen=True)
class RetryPolicy:
	max_attempts: int = 3
	base_delay_seconds: int = 30
	factor: int = 2

	@classmethod
	def from_settings(cls, max_attempts: int | None = None) -> "RetryPolicy":
		cfg = settings.ANALYSIS
		return cls(
			max_attempts=max_attempts or cfg["RETRY_MAX_ATTEMPTS"],
			base_delay_seconds=cfg["RETRY_BASE_DELAY_SECONDS"],
			factor=cfg["RETRY_BACKOFF_FACTOR"],
		)

	def should_retry(self, attempt: int) -> bool:
		return attempt < self.max_attempts

	def delay_for(self, attempt: int) -> int:
		"""Backoff before attempt ``attempt + 1``: base, base*factor, base*factor^2, ..."""
		return self.base_delay_seconds * self.factor ** max(attempt - 1, 0)


def enqueue(payload: dict, priority=Priority.NORMAL, countdown: int | None = None) -> str:
	from scanner.tasks import run_analysis_task

	priority = Priority.parse(priority)
	result = run_analysis_task.apply_async(
		kwargs=payload,
		priority=priority.broker_priority,
		countdown=countdown,
	)
	log.info(f"Queued analysis {payload.get('analysis_id')} as job {result.id} (priority {priority.name})")
	return result.id


def cancel(job_id: str):
	"""Drop a job that has not started yet. Running jobs stop cooperatively."""
	if job_id:
		AsyncResult(job_id).revoke()


def status(job_id: str) -> dict:
	if not job_id:
		return {"job_id": None, "state": None}
	result = AsyncResult(job_id)
	data = {"job_id": job_id, "state": result.state}
	if result.state == "PROGRESS" and isinstance(result.info, dict):
		data["meta"] = result.info
	elif result.failed():
		data["error"] = str(result.result)
	return data


def schedule_retry(analysis, policy: RetryPolicy | None = None):
	"""
	Queue a successor for a failed analysis, or return None when the
	policy is exhausted or another run already holds the domain.
	"""
	from scanner.models import Analysis

	policy = policy or RetryPolicy.from_settings((analysis.config or {}).get("retries"))
	if not policy.should_retry(analysis.attempt):
		log.info(f"Analysis {analysis.scan_id} failed on attempt {analysis.attempt}; no retries left")
		return None
	if Analysis.objects.active_for_domain(analysis.domain_id) is not None:
		log.info(f"Not retrying {analysis.scan_id}: another analysis is active for the domain")
		return None

	successor = Analysis.objects.create(
		domain_id=analysis.domain_id,
		hostname=analysis.hostname,
		config=analysis.config,
		trigger_type=analysis.trigger_type,
		triggered_by_id=analysis.triggered_by_id,
		priority=analysis.priority,
		attempt=analysis.attempt + 1,
		retry_of=analysis,
		step=f"Retry {analysis.attempt + 1}/{policy.max_attempts} of {analysis.scan_id}",
	)
	delay = policy.delay_for(analysis.attempt)
	successor.job_id = enqueue({"analysis_id": str(successor.pk)}, successor.priority, countdown=delay)
	successor.save(update_fields=["job_id"])
	log.info(f"Retrying {analysis.scan_id} as {successor.scan_id} in {delay}s")
	return successor


@task_success.connect
def on_analysis_success(sender=None, result=None, **kwargs):
	if sender is None or sender.name != ANALYSIS_TASK:
		return
	log.info(f"Job {sender.request.id} finished: {result}")


@task_failure.connect
def on_analysis_failure(sender=None, task_id=None, exception=None, **kwargs):
	if sender is None or sender.name != ANALYSIS_TASK:
		return
	log.warning(f"Job {task_id} failed: {exception}")
