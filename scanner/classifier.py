# scanner/classifier.py
"""
Pure classification of raw signals against the pattern taxonomy.

No I/O happens here; given the same taxonomy and the same input (and the same
``now`` for cookies) every function returns the same answer.
"""
import time
from datetime import datetime, timezone
from urllib.parse import urlparse

from tldextract import extract

from scanner.taxonomy import Taxonomy, get_taxonomy

DAY = 86400
MONTH = 30 * DAY

UNKNOWN_PROVIDER = "Unknown"


def base_domain(host: str) -> str:
	if not host:
		return ""
	host = host.lstrip(".")
	if not host:
		return ""
	parts = extract(host)
	return f"{parts.domain}.{parts.suffix}" if parts.suffix else parts.domain


def hostname_of(url: str) -> str:
	try:
		return (urlparse(url).hostname or "").lower()
	except ValueError:
		return ""


def _first_label(groups, text: str, default: str = "unknown") -> str:
	for group in groups:
		if group.matches(text):
			return group.label
	return default


class SignalClassifier:
	def __init__(self, taxonomy: Taxonomy | None = None):
		self.taxonomy = taxonomy or get_taxonomy()

	# ---- cookies ---------------------------------------------------------

	def categorize_cookie(self, name: str, domain: str = "") -> str:
		for group in self.taxonomy.cookie_categories:
			if group.matches(name):
				return group.label
		domain = (domain or "").lower()
		for needle, category in self.taxonomy.cookie_domain_hints:
			if needle in domain:
				return category
		return "unknown"

	def identify_provider(self, name: str, domain: str = "") -> dict:
		for provider in self.taxonomy.providers:
			if any(p.search(name) for p in provider.cookie_patterns):
				return {"name": provider.name, "domain": provider.domain, "category": provider.category}
		return {"name": UNKNOWN_PROVIDER, "domain": domain, "category": "unknown"}

	@staticmethod
	def duration_bucket(expires: float | None, now: float | None = None) -> str:
		if not expires:
			return "session"
		now = time.time() if now is None else now
		remaining = expires - now
		if remaining < DAY:
			return "session"
		if remaining <= MONTH:
			return "persistent"
		return "long-term"

	def detect_pii(self, value: str) -> bool:
		return any(p.search(value or "") for p in self.taxonomy.pii_value_patterns)

	def detect_tracking_data(self, value: str) -> bool:
		return any(p.search(value or "") for p in self.taxonomy.tracking_value_patterns)

	def is_encrypted(self, value: str) -> bool:
		value = value or ""
		return len(value) > 20 and any(p.search(value) for p in self.taxonomy.encoding_patterns)

	def complexity(self, value: str) -> str:
		value = value or ""
		if len(value) < 10:
			return "simple"
		if self.is_encrypted(value):
			return "encrypted"
		if any(c in value for c in "|&;"):
			return "complex"
		return "encoded"

	@staticmethod
	def gdpr_compliant(category: str, secure: bool, same_site: str | None, duration: str) -> bool:
		if category == "necessary":
			return True
		return bool(secure and same_site) and duration != "long-term"

	@staticmethod
	def ccpa_compliant(category: str, contains_pii: bool) -> bool:
		return not contains_pii or category == "necessary"

	@staticmethod
	def is_first_party(cookie_domain: str, page_url: str) -> bool:
		page_host = hostname_of(page_url)
		if not page_host:
			return False
		return base_domain(cookie_domain) == base_domain(page_host)

	def classify_cookie(self, raw, page_url: str, now: float | None = None) -> dict:
		category = self.categorize_cookie(raw.name, raw.domain)
		duration = self.duration_bucket(raw.expires, now)
		contains_pii = self.detect_pii(raw.value)
		return {
			"name": raw.name,
			"value": raw.value,
			"domain": raw.domain,
			"path": raw.path,
			"secure": raw.secure,
			"http_only": raw.http_only,
			"same_site": raw.same_site,
			"expires": (
				datetime.fromtimestamp(raw.expires, tz=timezone.utc).isoformat() if raw.expires else None
			),
			"session": raw.expires is None,
			"is_first_party": self.is_first_party(raw.domain, page_url),
			"size": raw.size,
			"category": category,
			"provider": self.identify_provider(raw.name, raw.domain),
			"duration": duration,
			"contains_pii": contains_pii,
			"contains_tracking_data": self.detect_tracking_data(raw.value),
			"encrypted": self.is_encrypted(raw.value),
			"complexity": self.complexity(raw.value),
			"gdpr_compliant": self.gdpr_compliant(category, raw.secure, raw.same_site, duration),
			"ccpa_compliant": self.ccpa_compliant(category, contains_pii),
			"found_on_urls": [page_url],
		}

	# ---- scripts ---------------------------------------------------------

	def categorize_script(self, src: str) -> str:
		return _first_label(self.taxonomy.script_categories, src)

	def categorize_script_content(self, content: str) -> str:
		return _first_label(self.taxonomy.script_content_categories, content)

	def identify_script_provider(self, src: str) -> dict:
		host = hostname_of(src)
		if not host:
			return {"name": UNKNOWN_PROVIDER, "domain": "unknown"}
		for provider_domain, name in self.taxonomy.script_providers:
			if provider_domain in host:
				return {"name": name, "domain": provider_domain}
		return {"name": UNKNOWN_PROVIDER, "domain": host}

	def script_has_tracking(self, content: str) -> bool:
		return any(p.search(content or "") for p in self.taxonomy.script_tracking_patterns)

	def script_has_consent(self, content: str) -> bool:
		return any(p.search(content or "") for p in self.taxonomy.script_consent_patterns)

	def classify_script(self, raw, page_url: str) -> dict:
		data = {
			"url": raw.src or "inline",
			"type": "inline" if raw.inline else "external",
			"category": "unknown",
			"provider": None,
			"size": len(raw.content) if raw.content else 0,
			"load_type": "async" if raw.is_async else ("defer" if raw.defer else "sync"),
			"found_on_urls": [page_url],
			"has_tracking": False,
			"has_consent": False,
		}
		if raw.src:
			data["category"] = self.categorize_script(raw.src)
			data["provider"] = self.identify_script_provider(raw.src)
		elif raw.content:
			data["category"] = self.categorize_script_content(raw.content)
			data["has_tracking"] = self.script_has_tracking(raw.content)
			data["has_consent"] = self.script_has_consent(raw.content)
		return data

	# ---- iframes, forms, storage ----------------------------------------

	def classify_iframe(self, raw, page_url: str) -> dict:
		return {
			"src": raw.src,
			"sandbox": list(raw.sandbox),
			"purpose": _first_label(self.taxonomy.iframe_purposes, raw.src),
			"provider": hostname_of(raw.src) or "unknown",
			"found_on_urls": [page_url],
		}

	def field_contains_pii(self, field) -> bool:
		identifier = f"{field.name} {field.type} {field.placeholder}".lower()
		return any(p.search(identifier) for p in self.taxonomy.pii_field_patterns)

	def classify_form(self, raw, page_url: str) -> dict:
		return {
			"action": raw.action,
			"method": raw.method,
			"fields": [
				{
					"name": f.name,
					"type": f.type,
					"required": f.required,
					"placeholder": f.placeholder,
					"contains_pii": self.field_contains_pii(f),
				}
				for f in raw.fields
			],
			"found_on_url": page_url,
		}

	def storage_purpose(self, key: str) -> str:
		return _first_label(self.taxonomy.storage_purposes, key)

	def classify_storage(self, raw, page_url: str) -> dict:
		return {
			"key": raw.key,
			"value": raw.value,
			"size": raw.size,
			"contains_pii": self.detect_pii(raw.value),
			"purpose": self.storage_purpose(raw.key),
			"found_on_urls": [page_url],
		}

	# ---- network ---------------------------------------------------------

	def tracking_purpose(self, url: str) -> str | None:
		return _first_label(self.taxonomy.request_purposes, url, default=None)

	@staticmethod
	def is_tracking_pixel(url: str, resource_type: str) -> bool:
		if resource_type != "image":
			return False
		if "pixel" in url or "track" in url or "beacon" in url:
			return True
		return ".gif?" in url or ".png?" in url

	def pixel_provider(self, url: str) -> str:
		host = hostname_of(url)
		if not host:
			return UNKNOWN_PROVIDER
		for domain, provider in self.taxonomy.pixel_providers:
			if domain in host:
				return provider
		return host

	def classify_request(self, raw) -> tuple[dict | None, dict | None]:
		"""Return ``(network_request, tracking_pixel)``; either may be None."""
		purpose = self.tracking_purpose(raw.url)
		request = None
		if purpose:
			request = {
				"url": raw.url,
				"method": raw.method,
				"type": raw.resource_type,
				"initiator": raw.initiator,
				"tracking_purpose": purpose,
				"found_on_url": raw.page_url,
				"timing": {
					"start": raw.started_at,
					"end": raw.finished_at,
					"duration": raw.duration_ms,
				},
				"status": raw.status,
				"size": raw.size,
			}
		pixel = None
		if self.is_tracking_pixel(raw.url, raw.resource_type):
			pixel = {
				"url": raw.url,
				"type": "pixel",
				"provider": self.pixel_provider(raw.url),
				"purpose": purpose or "tracking",
				"found_on_urls": [raw.page_url],
			}
		return request, pixel

	# ---- consent platforms ----------------------------------------------

	def consent_platform_name(self, hint_name: str) -> str:
		"""Map a raw hint (a global or a selector token) to a platform name."""
		for group in self.taxonomy.consent_platforms:
			if group.matches(hint_name):
				return group.label
		return hint_name

	def consent_platforms(self, hints, tcf: dict | None = None) -> list:
		"""Distinct platforms named by the raw hints, in first-seen order."""
		seen = {}
		for hint in hints:
			name = self.consent_platform_name(hint.name)
			if name in seen:
				continue
			seen[name] = {
				"name": name,
				"detected": True,
				"tcf_compliant": bool(tcf) or name in ("__tcfapi", "__cmp"),
			}
		return list(seen.values())
