# scanner/tasks.py
from celery import shared_task
import logging

from scanner import jobs, lifecycle
from scanner.exceptions import AnalysisFailed, AnalysisInProgress, InvalidTransition

log = logging.getLogger(__name__)

CONTENTION_MAX_RETRIES = 5
CONTENTION_COUNTDOWN = 60


def update_progress(task, stage: str, progress: int, message: str, details: dict = None):
	"""Mirror progress into the Celery task state."""
	task.update_state(
		state='PROGRESS',
		meta={
			'stage': stage,
			'progress': progress,
			'message': message,
			'details': details or {},
		}
	)


@shared_task(bind=True, name="scanner.tasks.run_analysis_task")
def run_analysis_task(self, analysis_id: str):
	"""
	Celery entrypoint for one analysis run.

	Contention (another live run on the domain) retries the job itself and
	never marks the record failed. A fatal failure leaves the record
	``failed`` and hands the retry decision to ``jobs.schedule_retry``.
	"""
	from scanner.models import Analysis
	from scanner.orchestrator import AnalysisOrchestrator

	analysis = Analysis.objects.filter(pk=analysis_id).select_related("domain").first()
	if analysis is None:
		log.warning(f"Analysis {analysis_id} no longer exists")
		return {"analysis_id": analysis_id, "status": None}
	if analysis.is_terminal:
		log.info(f"Analysis {analysis.scan_id} already {analysis.status}; skipping")
		return {"analysis_id": analysis_id, "status": analysis.status}

	if not self.request.called_directly:
		update_progress(self, 'init', 0, f'Starting analysis for {analysis.hostname}')

	try:
		final = AnalysisOrchestrator(analysis).run()
	except AnalysisInProgress as e:
		if self.request.retries < CONTENTION_MAX_RETRIES:
			log.info(f"{analysis.scan_id} waiting for the domain: {e}")
			raise self.retry(countdown=CONTENTION_COUNTDOWN, max_retries=CONTENTION_MAX_RETRIES)
		log.warning(f"Giving up on {analysis.scan_id}: {e}")
		try:
			analysis.transition(lifecycle.CANCEL, step="Cancelled: another analysis kept the domain busy")
		except InvalidTransition:
			pass  # cancelled by the user meanwhile
		analysis.refresh_from_db(fields=["status"])
		return {"analysis_id": analysis_id, "status": analysis.status}
	except AnalysisFailed as e:
		analysis.refresh_from_db()
		successor = jobs.schedule_retry(analysis)
		log.error(f"Analysis {analysis.scan_id} failed: {e}")
		return {
			"analysis_id": analysis_id,
			"status": analysis.status,
			"error": str(e),
			"retry_id": str(successor.pk) if successor else None,
		}

	return {"analysis_id": analysis_id, "status": final}


@shared_task
def run_scheduled_analysis(domain_id: str, config: dict = None, skip_if_active: bool = True):
	"""Unattended run for one domain, skipped while another run is live."""
	from scanner import service
	from scanner.models import Analysis

	active = Analysis.objects.active_for_domain(domain_id)
	if skip_if_active and active is not None and not active.is_stale():
		log.info(f"Skipping scheduled analysis for {domain_id}: {active.scan_id} is {active.status}")
		return {"domain_id": domain_id, "skipped": True, "active_id": str(active.pk)}

	try:
		analysis_id = service.start_analysis(
			domain_id,
			config=config,
			priority=jobs.Priority.LOW,
			trigger_type=Analysis.TriggerType.SCHEDULED,
		)
	except AnalysisInProgress as e:
		log.info(f"Scheduled analysis for {domain_id} rejected: {e}")
		return {"domain_id": domain_id, "skipped": True, "active_id": str(e.active_id) if e.active_id else None}
	return {"domain_id": domain_id, "skipped": False, "analysis_id": str(analysis_id)}


@shared_task
def run_scheduled_analyses(frequency: str):
	"""Queue an unattended analysis for every domain on this schedule."""
	from domains.models import Domain

	domains = Domain.objects.filter(auto_analysis_enabled=True, analysis_frequency=frequency)

	queued = 0
	for domain in domains:
		run_scheduled_analysis.delay(str(domain.id), domain.analysis_config or None)
		queued += 1
		log.info(f"Queued {frequency} analysis for {domain.url}")

	log.info(f"Scheduled {queued} {frequency} analyses")
	return {"queued": queued, "frequency": frequency}
