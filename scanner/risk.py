# scanner/risk.py
"""
Statistics, risk assessment and recommendations for a finished crawl.

Everything here works on the classified signal lists (plain dicts) so it
runs the same against a live orchestrator run or a stored ``Analysis``.
"""

PRIVACY_THRESHOLDS = (5, 15, 30)
COMPLIANCE_THRESHOLDS = (5, 20, 40)
SECURITY_THRESHOLDS = (5, 15, 25)

RISK_LEVELS = ("low", "medium", "high", "critical")

LARGE_COOKIE_BYTES = 1000


def risk_level(score: int, thresholds) -> str:
	low, medium, high = thresholds
	if score <= low:
		return "low"
	if score <= medium:
		return "medium"
	if score <= high:
		return "high"
	return "critical"


def risk_scores(cookies: list, consent_detected: bool) -> dict:
	privacy = (
		3 * sum(1 for c in cookies if c.get("contains_pii"))
		+ 2 * sum(1 for c in cookies if not c.get("is_first_party"))
		+ 2 * sum(1 for c in cookies if c.get("contains_tracking_data"))
	)
	compliance = (
		4 * sum(1 for c in cookies if not c.get("gdpr_compliant"))
		+ 2 * sum(1 for c in cookies if c.get("category") == "advertising")
		+ (0 if consent_detected else 10)
	)
	security = (
		3 * sum(1 for c in cookies if not c.get("secure"))
		+ 4 * sum(1 for c in cookies if not c.get("http_only") and c.get("category") == "necessary")
		+ 2 * sum(1 for c in cookies if not c.get("same_site"))
	)
	return {"privacy": privacy, "compliance": compliance, "security": security}


def assess_risk(cookies: list, consent_detected: bool) -> dict:
	scores = risk_scores(cookies, consent_detected)
	return {
		"privacy_risk": risk_level(scores["privacy"], PRIVACY_THRESHOLDS),
		"compliance_risk": risk_level(scores["compliance"], COMPLIANCE_THRESHOLDS),
		"security_risk": risk_level(scores["security"], SECURITY_THRESHOLDS),
		"scores": scores,
	}


def compliance_score(cookies: list) -> dict:
	if not cookies:
		return {"gdpr": 100, "ccpa": 100, "overall": 100}
	total = len(cookies)
	gdpr = round(100 * sum(1 for c in cookies if c.get("gdpr_compliant")) / total)
	ccpa = round(100 * sum(1 for c in cookies if c.get("ccpa_compliant")) / total)
	return {"gdpr": gdpr, "ccpa": ccpa, "overall": round((gdpr + ccpa) / 2)}


def calculate_statistics(
	cookies: list,
	scripts: list,
	network_requests: list,
	error_count: int = 0,
	urls_analyzed: int = 0,
	scan_seconds: float | None = None,
) -> dict:
	return {
		"total_cookies": len(cookies),
		"first_party_cookies": sum(1 for c in cookies if c.get("is_first_party")),
		"third_party_cookies": sum(1 for c in cookies if not c.get("is_first_party")),
		"session_cookies": sum(1 for c in cookies if c.get("session")),
		"persistent_cookies": sum(1 for c in cookies if not c.get("session")),
		"secure_cookies": sum(1 for c in cookies if c.get("secure")),
		"http_only_cookies": sum(1 for c in cookies if c.get("http_only")),
		"same_site_cookies": sum(1 for c in cookies if c.get("same_site")),
		"total_scripts": len(scripts),
		"inline_scripts": sum(1 for s in scripts if s.get("type") == "inline"),
		"external_scripts": sum(1 for s in scripts if s.get("type") == "external"),
		"tracking_scripts": sum(1 for s in scripts if s.get("has_tracking")),
		"total_requests": len(network_requests),
		"tracking_requests": sum(1 for r in network_requests if r.get("tracking_purpose")),
		"compliance_score": compliance_score(cookies),
		"performance_metrics": {
			"total_scan_time": round(scan_seconds, 2) if scan_seconds is not None else None,
			"error_rate": error_count / max(urls_analyzed, 1),
		},
	}


def generate_recommendations(cookies: list, consent_detected: bool) -> list:
	"""Independent rules; each contributes at most one finding."""
	recommendations = []

	insecure = [c["name"] for c in cookies if not c.get("secure")]
	if insecure:
		recommendations.append({
			"type": "security",
			"severity": "warning",
			"title": "Insecure cookies detected",
			"description": f"{len(insecure)} cookies are missing the Secure attribute",
			"action": "Set the Secure attribute on every cookie",
			"affected_items": insecure,
			"estimated_impact": "Protects cookies against man-in-the-middle attacks",
		})

	if not consent_detected:
		recommendations.append({
			"type": "compliance",
			"severity": "error",
			"title": "No consent management detected",
			"description": "No consent management platform was found on the site",
			"action": "Deploy a consent management platform (CMP)",
			"affected_items": ["Entire website"],
			"estimated_impact": "Compliance with GDPR and other privacy regulations",
		})

	pii = [c["name"] for c in cookies if c.get("contains_pii")]
	if pii:
		recommendations.append({
			"type": "privacy",
			"severity": "warning",
			"title": "Cookies containing personal data detected",
			"description": f"{len(pii)} cookies contain possible personal information",
			"action": "Review and minimise personal data stored in cookies",
			"affected_items": pii,
			"estimated_impact": "Lower privacy risk",
		})

	large = [c["name"] for c in cookies if (c.get("size") or 0) > LARGE_COOKIE_BYTES]
	if large:
		recommendations.append({
			"type": "performance",
			"severity": "info",
			"title": "Large cookies detected",
			"description": f"{len(large)} cookies are larger than 1KB",
			"action": "Shrink these cookies or move the data to local storage",
			"affected_items": large,
			"estimated_impact": "Faster page loads",
		})

	return recommendations


def compliance_report(cookies: list, statistics: dict, recommendations: list) -> dict:
	def by_category(cat):
		return sum(1 for c in cookies if c.get("category") == cat)

	return {
		"summary": {
			"total_cookies": statistics.get("total_cookies", len(cookies)),
			"necessary_cookies": by_category("necessary"),
			"analytics_cookies": by_category("analytics"),
			"advertising_cookies": by_category("advertising"),
			"compliance_score": statistics.get("compliance_score") or compliance_score(cookies),
		},
		"gdpr_issues": [r for r in recommendations if r.get("type") == "compliance"],
		"security_issues": [r for r in recommendations if r.get("type") == "security"],
		"recommendations": recommendations,
	}
