# domains/views.py
import re
from django.shortcuts import get_object_or_404
from rest_framework.decorators import api_view
from rest_framework.response import Response
from rest_framework import status
from drf_spectacular.utils import extend_schema
from .models import Domain
from .serializers import DomainScheduleSerializer

URL_RE = re.compile(r"^(https?://)?([a-z0-9-]+\.)+[a-z]{2,}(:\d+)?(/.*)?$", re.I)


def _serialize(d: Domain):
	return {
		"id": str(d.id),
		"url": d.url,
		"hostname": d.hostname,
		"created_at": d.created_at.isoformat(),
		"updated_at": d.updated_at.isoformat(),
		"last_analysis_at": d.last_analysis_at.isoformat() if d.last_analysis_at else None,
		"auto_analysis_enabled": d.auto_analysis_enabled,
		"analysis_frequency": d.analysis_frequency,
		"analysis_config": d.analysis_config,
	}


def _get_owned(request, **kwargs) -> Domain:
	return get_object_or_404(Domain, user=request.user, **kwargs)


def _clean_url(raw) -> str:
	return (raw or "").strip().rstrip("/")


@extend_schema(
	methods=["GET"],
	responses={200: {"type": "array", "items": {"type": "object"}}},
	description="List all domains for the current user",
	tags=["Domains"]
)
@extend_schema(
	methods=["POST"],
	request={"application/json": {"type": "object", "properties": {"url": {"type": "string"}}, "required": ["url"]}},
	responses={201: {"type": "object"}},
	description="Register a domain for analysis",
	tags=["Domains"]
)
@api_view(["GET", "POST"])
def domains_list(request):
	if request.method == "GET":
		qs = Domain.objects.filter(user=request.user).order_by("-created_at")
		return Response([_serialize(d) for d in qs])

	url = _clean_url(request.data.get("url"))
	if not URL_RE.match(url):
		return Response({"url": ["Enter a valid URL like https://example.com"]}, status=400)

	d = Domain.objects.create(user=request.user, url=url)
	return Response(_serialize(d), status=status.HTTP_201_CREATED)


@extend_schema(
	methods=["GET"],
	responses={200: {"type": "object"}},
	description="Get domain details",
	tags=["Domains"]
)
@extend_schema(
	methods=["PATCH"],
	request={"application/json": {"type": "object", "properties": {"url": {"type": "string"}}}},
	responses={200: {"type": "object"}},
	description="Update domain",
	tags=["Domains"]
)
@extend_schema(
	methods=["DELETE"],
	responses={204: None},
	description="Delete domain and its analyses",
	tags=["Domains"]
)
@api_view(["GET", "PATCH", "DELETE"])
def domain_detail(request, id):
	d = _get_owned(request, id=id)

	if request.method == "GET":
		return Response(_serialize(d))

	if request.method == "PATCH":
		if "url" in request.data:
			url = _clean_url(request.data.get("url"))
			if not url:
				return Response({"url": ["This field may not be blank."]}, status=400)
			if not URL_RE.match(url):
				return Response({"url": ["Enter a valid URL like https://example.com"]}, status=400)
			d.url = url
			d.save(update_fields=["url", "updated_at"])
		return Response(_serialize(d))

	d.delete()
	return Response(status=status.HTTP_204_NO_CONTENT)


@extend_schema(
	request={"application/json": {"type": "object", "properties": {
		"auto_analysis_enabled": {"type": "boolean"},
		"analysis_frequency": {"type": "string", "enum": ["daily", "weekly", "monthly"]},
		"analysis_config": {"type": "object"},
	}}},
	responses={200: {"type": "object"}},
	description="Configure unattended analyses for a domain",
	tags=["Domains"]
)
@api_view(["PATCH"])
def domain_schedule(request, id):
	d = _get_owned(request, id=id)
	serializer = DomainScheduleSerializer(d, data=request.data, partial=True)
	serializer.is_valid(raise_exception=True)
	serializer.save()
	return Response(_serialize(d))
