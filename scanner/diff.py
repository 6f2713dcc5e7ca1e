# scanner/diff.py
"""Longitudinal diffing between two analysis runs of the same domain."""

CHANGE_FIELDS = ("value", "expires", "secure", "http_only", "same_site", "category")
DETAILED_FIELDS = CHANGE_FIELDS + ("size", "duration")

RISK_ORDER = {"low": 1, "medium": 2, "high": 3, "critical": 4}


def cookie_key(cookie: dict) -> tuple:
	return (cookie.get("name"), cookie.get("domain"))


def _summary(cookie: dict) -> dict:
	return {"name": cookie.get("name"), "domain": cookie.get("domain"), "category": cookie.get("category")}


def cookie_field_changes(old: dict, new: dict, fields=CHANGE_FIELDS) -> list:
	return [
		{"field": f, "old_value": old.get(f), "new_value": new.get(f)}
		for f in fields
		if old.get(f) != new.get(f)
	]


def _provider_names(cookies: list) -> list:
	names = []
	for c in cookies:
		name = (c.get("provider") or {}).get("name")
		if name and name not in names:
			names.append(name)
	return names


def new_providers(old_cookies: list, new_cookies: list) -> list:
	old = set(_provider_names(old_cookies))
	return [p for p in _provider_names(new_cookies) if p not in old]


def new_technologies(old_tech: list, new_tech: list) -> list:
	old = {t.get("name") for t in old_tech}
	return [t for t in new_tech if t.get("name") not in old]


def diff_cookies(old_cookies: list, new_cookies: list, fields=CHANGE_FIELDS) -> tuple:
	"""Return ``(new, removed, modified)`` keyed by (name, domain)."""
	old_map = {cookie_key(c): c for c in old_cookies}
	new_map = {cookie_key(c): c for c in new_cookies}

	added = [_summary(c) for k, c in new_map.items() if k not in old_map]
	removed = [_summary(c) for k, c in old_map.items() if k not in new_map]
	modified = []
	for key, cookie in new_map.items():
		previous = old_map.get(key)
		if previous is None:
			continue
		changes = cookie_field_changes(previous, cookie, fields)
		if changes:
			modified.append({"name": cookie.get("name"), "domain": cookie.get("domain"), "changes": changes})
	return added, removed, modified


def detect_changes(current: dict, previous: dict | None) -> dict:
	"""
	Change set of ``current`` against the last completed run.

	Both arguments are mappings with ``cookies``, ``scripts`` and
	``technologies`` lists. With no previous run every cookie is new.
	"""
	cookies = current.get("cookies") or []
	if previous is None:
		return {
			"new_cookies": [_summary(c) for c in cookies],
			"removed_cookies": [],
			"modified_cookies": [],
			"new_providers": _provider_names(cookies),
			"new_technologies": list(current.get("technologies") or []),
			"new_scripts": [s.get("url") for s in current.get("scripts") or []],
			"removed_scripts": [],
		}

	added, removed, modified = diff_cookies(previous.get("cookies") or [], cookies)
	old_scripts = {s.get("url") for s in previous.get("scripts") or []}
	new_scripts = {s.get("url") for s in current.get("scripts") or []}
	return {
		"new_cookies": added,
		"removed_cookies": removed,
		"modified_cookies": modified,
		"new_providers": new_providers(previous.get("cookies") or [], cookies),
		"new_technologies": new_technologies(previous.get("technologies") or [], current.get("technologies") or []),
		"new_scripts": sorted(new_scripts - old_scripts),
		"removed_scripts": sorted(old_scripts - new_scripts),
	}


def risk_change(before: str | None, after: str | None) -> str:
	difference = RISK_ORDER.get(before, 0) - RISK_ORDER.get(after, 0)
	if difference > 0:
		return "improved"
	if difference < 0:
		return "worsened"
	return "unchanged"


def compare(first: dict, second: dict) -> dict:
	"""
	Compare two completed runs, ``first`` being the older baseline.

	Each argument carries ``cookies``, ``technologies``, ``statistics`` and
	``finished_at`` (a datetime or None).
	"""
	added, removed, modified = diff_cookies(first["cookies"], second["cookies"], DETAILED_FIELDS)
	risk_a = (first.get("statistics") or {}).get("risk_assessment") or {}
	risk_b = (second.get("statistics") or {}).get("risk_assessment") or {}

	days = None
	if first.get("finished_at") and second.get("finished_at"):
		days = abs((second["finished_at"] - first["finished_at"]).total_seconds()) / 86400

	return {
		"summary": {
			"first_date": first.get("finished_at"),
			"second_date": second.get("finished_at"),
			"days_between": days,
			"cookies_difference": len(second["cookies"]) - len(first["cookies"]),
		},
		"changes": {
			"new_cookies": added,
			"removed_cookies": removed,
			"modified_cookies": modified,
			"new_providers": new_providers(first["cookies"], second["cookies"]),
			"new_technologies": new_technologies(first.get("technologies") or [], second.get("technologies") or []),
		},
		"risk_comparison": {
			name: {
				"before": risk_a.get(name),
				"after": risk_b.get(name),
				"change": risk_change(risk_a.get(name), risk_b.get(name)),
			}
			for name in ("privacy_risk", "compliance_risk", "security_risk")
		},
	}
