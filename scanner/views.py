from django.http import HttpResponse
from django.shortcuts import get_object_or_404
from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.response import Response

from domains.models import Domain
from scanner import service
from scanner.config import AnalysisConfig
from scanner.exceptions import (
	AnalysisInProgress,
	AnalysisNotCompleted,
	AnalysisNotFound,
	InvalidAnalysisConfig,
	InvalidTransition,
)
from scanner.models import Analysis

ERROR_STATUS = {
	AnalysisNotFound: status.HTTP_404_NOT_FOUND,
	AnalysisInProgress: status.HTTP_409_CONFLICT,
	InvalidTransition: status.HTTP_409_CONFLICT,
	AnalysisNotCompleted: status.HTTP_400_BAD_REQUEST,
	InvalidAnalysisConfig: status.HTTP_400_BAD_REQUEST,
}


def _error(e: Exception) -> Response:
	body = {"detail": str(e)}
	if isinstance(e, AnalysisInProgress) and e.active_id:
		body["active_analysis_id"] = str(e.active_id)
	return Response(body, status=ERROR_STATUS.get(type(e), status.HTTP_400_BAD_REQUEST))


def _owned_domain(request, domain_id) -> Domain:
	return get_object_or_404(Domain, id=domain_id, user=request.user)


def _owned_analysis(request, analysis_id) -> Analysis:
	return get_object_or_404(Analysis, pk=analysis_id, domain__user=request.user)


def _int_param(request, name: str, default: int) -> int:
	try:
		return int(request.query_params.get(name, default))
	except (TypeError, ValueError):
		return default


@extend_schema(
	methods=["GET"],
	responses={200: {"type": "object"}},
	description="Paginated analysis history for a domain (?status=&page=&limit=)",
	tags=["Analyses"]
)
@extend_schema(
	methods=["POST"],
	request={"application/json": {"type": "object", "properties": {
		"scan_type": {"type": "string", "enum": ["quick", "full", "deep", "custom"]},
		"depth": {"type": "integer"},
		"max_urls": {"type": "integer"},
		"include_subdomains": {"type": "boolean"},
		"timeout_ms": {"type": "integer"},
		"priority": {"type": "string", "enum": ["low", "normal", "high"]},
	}}},
	responses={201: {"type": "object"}, 409: {"type": "object"}},
	description="Start a new analysis for a domain",
	tags=["Analyses"]
)
@api_view(["GET", "POST"])
def domain_analyses(request, domain_id):
	domain = _owned_domain(request, domain_id)

	if request.method == "GET":
		return Response(service.get_history(
			domain.id,
			status=request.query_params.get("status") or None,
			page=_int_param(request, "page", 1),
			limit=_int_param(request, "limit", 10),
		))

	payload = dict(request.data)
	priority = payload.pop("priority", "normal")
	try:
		analysis_id = service.start_analysis(
			domain.id,
			config=payload,
			priority=priority,
			triggered_by=request.user,
			trigger_type=Analysis.TriggerType.API if request.auth else Analysis.TriggerType.MANUAL,
		)
	except ValueError as e:
		return Response({"priority": [str(e)]}, status=400)
	except (InvalidAnalysisConfig, AnalysisInProgress) as e:
		return _error(e)

	analysis = Analysis.objects.get(pk=analysis_id)
	return Response({
		"analysis_id": str(analysis.pk),
		"scan_id": analysis.scan_id,
		"status": analysis.status,
		"estimated_duration": service.estimate_duration(AnalysisConfig.from_payload(analysis.config)),
		"progress": analysis.progress(),
	}, status=status.HTTP_201_CREATED)


@extend_schema(
	responses={200: {"type": "object"}},
	description="Status and progress of an analysis",
	tags=["Analyses"]
)
@api_view(["GET"])
def analysis_status(request, analysis_id):
	analysis = _owned_analysis(request, analysis_id)
	return Response(service.get_status(analysis.pk))


@extend_schema(
	request=None,
	responses={200: {"type": "object"}, 409: {"type": "object"}},
	description="Cancel a pending or running analysis",
	tags=["Analyses"]
)
@api_view(["POST"])
def cancel_analysis(request, analysis_id):
	analysis = _owned_analysis(request, analysis_id)
	try:
		analysis = service.cancel(analysis.pk)
	except InvalidTransition as e:
		return _error(e)
	return Response({"analysis_id": str(analysis.pk), "status": analysis.status})


@extend_schema(
	responses={200: {"type": "object"}},
	description="Full results of a completed or cancelled analysis",
	tags=["Analyses"]
)
@api_view(["GET"])
def analysis_results(request, analysis_id):
	analysis = _owned_analysis(request, analysis_id)
	try:
		return Response(service.get_results(analysis.pk))
	except AnalysisNotCompleted as e:
		return _error(e)


@extend_schema(
	responses={200: {"type": "string"}},
	description="Cookie table of a completed analysis as CSV",
	tags=["Analyses"]
)
@api_view(["GET"])
def export_analysis_csv(request, analysis_id):
	analysis = _owned_analysis(request, analysis_id)
	try:
		body = service.export_csv(analysis.pk)
	except AnalysisNotCompleted as e:
		return _error(e)
	response = HttpResponse(body, content_type="text/csv")
	response["Content-Disposition"] = f'attachment; filename="privacy_audit_{analysis.scan_id}.csv"'
	return response


@extend_schema(
	responses={200: {"type": "object"}},
	description="Compliance report for a completed analysis",
	tags=["Analyses"]
)
@api_view(["GET"])
def analysis_compliance(request, analysis_id):
	analysis = _owned_analysis(request, analysis_id)
	try:
		return Response(service.compliance_report(analysis.pk))
	except AnalysisNotCompleted as e:
		return _error(e)


@extend_schema(
	responses={200: {"type": "object"}},
	description="Compare two completed analyses; the first is the baseline",
	tags=["Analyses"]
)
@api_view(["GET"])
def compare_analyses(request, first_id, second_id):
	first = _owned_analysis(request, first_id)
	second = _owned_analysis(request, second_id)
	try:
		return Response(service.compare(first.pk, second.pk))
	except AnalysisNotCompleted as e:
		return _error(e)


@extend_schema(
	responses={200: {"type": "object"}},
	description="Cookie counts and compliance score over time (?days=30)",
	tags=["Analyses"]
)
@api_view(["GET"])
def analysis_trends(request, domain_id):
	domain = _owned_domain(request, domain_id)
	days = max(_int_param(request, "days", 30), 1)
	return Response({
		"trends": service.get_trends(domain.id, days),
		"domain": domain.hostname,
		"period": f"{days} days",
	})
