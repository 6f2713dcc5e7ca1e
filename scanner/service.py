# scanner/service.py
"""
Operations exposed to the HTTP layer and to the scheduler.

Authorization is not handled here: callers resolve ownership before
calling in.
"""
import csv
import io
import logging
from collections import Counter

from django.core.exceptions import ValidationError
from django.db import transaction

from domains.models import Domain
from scanner import diff, jobs, lifecycle, risk
from scanner.config import AnalysisConfig
from scanner.exceptions import AnalysisInProgress, AnalysisNotCompleted, AnalysisNotFound
from scanner.models import Analysis

logger = logging.getLogger("scanner")

CSV_HEADERS = [
	"Cookie Name", "Domain", "Category", "Provider", "Secure",
	"HttpOnly", "SameSite", "First Party", "Duration", "Size",
]


def get_analysis(analysis_id) -> Analysis:
	try:
		return Analysis.objects.select_related("domain").get(pk=analysis_id)
	except (Analysis.DoesNotExist, ValueError, ValidationError):
		raise AnalysisNotFound(f"Analysis {analysis_id} not found") from None


def _completed(analysis_id) -> Analysis:
	analysis = get_analysis(analysis_id)
	if analysis.status != Analysis.Status.COMPLETED:
		raise AnalysisNotCompleted(f"Analysis {analysis.scan_id} is {analysis.status}, not completed")
	return analysis


def estimate_duration(config: AnalysisConfig) -> int:
	"""Rough wall-clock seconds for a run with this configuration."""
	seconds = 30 + min(config.max_urls, 100) * 0.5 + config.depth * 5
	if config.include_subdomains:
		seconds += 30
	return round(seconds)


def start_analysis(
	domain_id,
	domain: str | None = None,
	config: dict | None = None,
	priority=jobs.Priority.NORMAL,
	triggered_by=None,
	trigger_type: str = Analysis.TriggerType.MANUAL,
):
	"""
	Create a pending analysis for the domain and queue it.

	Raises ``AnalysisInProgress`` when a non-stale run is already live;
	a stale one is force-failed and the new run goes ahead.
	"""
	cfg = AnalysisConfig.from_payload(config)
	priority = jobs.Priority.parse(priority)

	with transaction.atomic():
		try:
			domain_obj = Domain.objects.select_for_update().get(pk=domain_id)
		except (Domain.DoesNotExist, ValueError, ValidationError):
			raise AnalysisNotFound(f"Domain {domain_id} not found") from None

		active = Analysis.objects.active_for_domain(domain_obj.pk)
		if active is not None:
			if not active.is_stale():
				raise AnalysisInProgress(domain_obj.pk, active.pk)
			logger.warning(f"[service] force-failing stale analysis {active.scan_id}")
			active.transition(lifecycle.FAIL, step=lifecycle.STALE_STEP)

		analysis = Analysis.objects.create(
			domain=domain_obj,
			hostname=(domain or domain_obj.hostname).lower(),
			config=cfg.to_dict(),
			trigger_type=trigger_type,
			triggered_by=triggered_by,
			priority=int(priority),
			step="Queued",
		)

	analysis.job_id = jobs.enqueue({"analysis_id": str(analysis.pk)}, priority)
	Analysis.objects.filter(pk=analysis.pk).update(job_id=analysis.job_id)
	logger.info(f"[service] analysis {analysis.scan_id} queued for {analysis.hostname}")
	return analysis.pk


def get_status(analysis_id) -> dict:
	analysis = get_analysis(analysis_id)
	return {
		"id": str(analysis.pk),
		"scan_id": analysis.scan_id,
		"domain": analysis.hostname,
		"status": analysis.status,
		"progress": analysis.progress(),
		"statistics": analysis.statistics,
		"realtime_metrics": analysis.realtime_metrics(),
		"attempt": analysis.attempt,
		"job": jobs.status(analysis.job_id),
		"is_completed": analysis.status == Analysis.Status.COMPLETED,
		"is_running": analysis.status == Analysis.Status.RUNNING,
		"duration": analysis.duration_seconds,
	}


def cancel(analysis_id) -> Analysis:
	"""pending/running -> cancelled; raises ``InvalidTransition`` for finished runs."""
	analysis = get_analysis(analysis_id)
	analysis.transition(lifecycle.CANCEL, step="Cancelled by user")
	if analysis.job_id:
		jobs.cancel(analysis.job_id)
	logger.info(f"[service] analysis {analysis.scan_id} cancelled")
	return analysis


def _group_by_category(cookies: list) -> dict:
	return dict(Counter(c.get("category") or "unknown" for c in cookies))


def _group_by_provider(cookies: list) -> dict:
	return dict(Counter((c.get("provider") or {}).get("name") or "Unknown" for c in cookies))


def get_results(analysis_id) -> dict:
	"""
	Full record of a completed run. Cancelled runs are returned too, with
	whatever signals were collected before the stop.
	"""
	analysis = get_analysis(analysis_id)
	if analysis.status not in (Analysis.Status.COMPLETED, Analysis.Status.CANCELLED):
		raise AnalysisNotCompleted(f"Analysis {analysis.scan_id} is {analysis.status}")
	return {
		"analysis": {
			"id": str(analysis.pk),
			"scan_id": analysis.scan_id,
			"domain": analysis.hostname,
			"status": analysis.status,
			"duration": analysis.duration_seconds,
			"finished_at": analysis.finished_at,
			"config": analysis.config,
		},
		"summary": {
			"total_cookies": len(analysis.cookies),
			"cookies_by_category": _group_by_category(analysis.cookies),
			"cookies_by_provider": _group_by_provider(analysis.cookies),
			"risk_assessment": analysis.statistics.get("risk_assessment"),
			"compliance_score": analysis.statistics.get("compliance_score"),
		},
		"statistics": analysis.statistics,
		"changes": analysis.changes,
		"recommendations": analysis.recommendations,
		"detailed": {
			"cookies": analysis.cookies,
			"scripts": analysis.scripts,
			"technologies": analysis.technologies,
			"consent_management": analysis.consent_management,
			"local_storage": analysis.local_storage,
			"session_storage": analysis.session_storage,
			"network_requests": analysis.network_requests,
			"tracking_pixels": analysis.tracking_pixels,
			"forms": analysis.forms,
			"iframes": analysis.iframes,
			"discovered_urls": analysis.discovered_urls,
		},
		"errors": analysis.errors,
	}


def compare(analysis_id_a, analysis_id_b) -> dict:
	"""Compare two completed runs; ``a`` is the baseline."""
	a = _completed(analysis_id_a)
	b = _completed(analysis_id_b)

	def snapshot(x: Analysis) -> dict:
		return {
			"cookies": x.cookies,
			"technologies": x.technologies,
			"statistics": x.statistics,
			"finished_at": x.finished_at,
		}

	comparison = diff.compare(snapshot(a), snapshot(b))
	return {
		"comparison": comparison,
		"first": {"id": str(a.pk), "scan_id": a.scan_id, "finished_at": a.finished_at},
		"second": {"id": str(b.pk), "scan_id": b.scan_id, "finished_at": b.finished_at},
	}


def get_trends(domain_id, days: int = 30) -> list:
	return Analysis.objects.trends(domain_id, days)


def get_history(domain_id, status: str | None = None, page: int = 1, limit: int = 10) -> dict:
	qs = Analysis.objects.for_domain(domain_id)
	if status:
		qs = qs.filter(status=status)
	total = qs.count()
	page = max(int(page), 1)
	limit = max(min(int(limit), 100), 1)
	offset = (page - 1) * limit
	rows = qs.order_by("-created_at")[offset:offset + limit]
	return {
		"analyses": [
			{
				"id": str(a.pk),
				"scan_id": a.scan_id,
				"status": a.status,
				"trigger_type": a.trigger_type,
				"attempt": a.attempt,
				"started_at": a.started_at,
				"finished_at": a.finished_at,
				"total_cookies": (a.statistics or {}).get("total_cookies", len(a.cookies)),
				"created_at": a.created_at,
			}
			for a in rows
		],
		"pagination": {
			"total": total,
			"pages": (total + limit - 1) // limit,
			"page": page,
			"limit": limit,
		},
	}


def compliance_report(analysis_id) -> dict:
	analysis = _completed(analysis_id)
	return {
		"compliance_report": risk.compliance_report(analysis.cookies, analysis.statistics, analysis.recommendations),
		"analysis_id": str(analysis.pk),
		"domain": analysis.hostname,
		"finished_at": analysis.finished_at,
	}


def export_csv(analysis_id) -> str:
	analysis = _completed(analysis_id)
	out = io.StringIO()
	writer = csv.writer(out)
	writer.writerow(CSV_HEADERS)
	for c in analysis.cookies:
		writer.writerow([
			c.get("name"),
			c.get("domain"),
			c.get("category"),
			(c.get("provider") or {}).get("name") or "Unknown",
			"Yes" if c.get("secure") else "No",
			"Yes" if c.get("http_only") else "No",
			c.get("same_site") or "None",
			"Yes" if c.get("is_first_party") else "No",
			c.get("duration"),
			c.get("size"),
		])
	return out.getvalue()
