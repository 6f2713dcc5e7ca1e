"""Tests for scanner.diff: change detection between analysis runs."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from scanner import diff


def _cookie(name: str, domain: str = ".example.com", **overrides) -> dict:
    cookie = {
        "name": name,
        "domain": domain,
        "value": "v",
        "expires": None,
        "secure": True,
        "http_only": False,
        "same_site": "Lax",
        "category": "analytics",
        "size": 2,
        "duration": "session",
        "provider": {"name": "Google Analytics"},
    }
    cookie.update(overrides)
    return cookie


class TestDiffCookies:
    """Tests for diff_cookies()."""

    def test_added_removed_modified(self) -> None:
        old = [_cookie("_ga"), _cookie("_gid"), _cookie("keep")]
        new = [_cookie("_ga", secure=False), _cookie("keep"), _cookie("_fbp", category="advertising")]
        added, removed, modified = diff.diff_cookies(old, new)
        assert [c["name"] for c in added] == ["_fbp"]
        assert [c["name"] for c in removed] == ["_gid"]
        assert modified == [{
            "name": "_ga",
            "domain": ".example.com",
            "changes": [{"field": "secure", "old_value": True, "new_value": False}],
        }]

    def test_identity_is_name_and_domain(self) -> None:
        added, removed, _ = diff.diff_cookies([_cookie("_ga")], [_cookie("_ga", domain=".other.com")])
        assert len(added) == 1
        assert len(removed) == 1

    def test_identical_runs(self) -> None:
        cookies = [_cookie("_ga"), _cookie("sid")]
        assert diff.diff_cookies(cookies, list(cookies)) == ([], [], [])


class TestDetectChanges:
    """Tests for detect_changes()."""

    def test_first_run_everything_is_new(self) -> None:
        current = {
            "cookies": [_cookie("_ga")],
            "scripts": [{"url": "https://cdn.example.com/a.js"}],
            "technologies": [{"name": "jQuery"}],
        }
        changes = diff.detect_changes(current, None)
        assert [c["name"] for c in changes["new_cookies"]] == ["_ga"]
        assert changes["removed_cookies"] == []
        assert changes["new_providers"] == ["Google Analytics"]
        assert changes["new_scripts"] == ["https://cdn.example.com/a.js"]

    def test_against_previous(self) -> None:
        previous = {
            "cookies": [_cookie("_ga")],
            "scripts": [{"url": "a.js"}, {"url": "b.js"}],
            "technologies": [{"name": "jQuery"}],
        }
        current = {
            "cookies": [_cookie("_ga"), _cookie("_fbp", provider={"name": "Facebook"})],
            "scripts": [{"url": "b.js"}, {"url": "c.js"}],
            "technologies": [{"name": "jQuery"}, {"name": "React"}],
        }
        changes = diff.detect_changes(current, previous)
        assert [c["name"] for c in changes["new_cookies"]] == ["_fbp"]
        assert changes["new_providers"] == ["Facebook"]
        assert [t["name"] for t in changes["new_technologies"]] == ["React"]
        assert changes["new_scripts"] == ["c.js"]
        assert changes["removed_scripts"] == ["a.js"]


class TestRiskChange:
    """Tests for risk_change()."""

    @pytest.mark.parametrize(
        ("before", "after", "expected"),
        [
            ("high", "low", "improved"),
            ("low", "critical", "worsened"),
            ("medium", "medium", "unchanged"),
            (None, None, "unchanged"),
        ],
    )
    def test_direction(self, before, after, expected: str) -> None:
        assert diff.risk_change(before, after) == expected


class TestCompare:
    """Tests for compare()."""

    def test_summary_and_risk(self) -> None:
        t0 = datetime(2026, 1, 1, tzinfo=timezone.utc)
        first = {
            "cookies": [_cookie("_ga")],
            "technologies": [],
            "statistics": {"risk_assessment": {"privacy_risk": "high", "compliance_risk": "low", "security_risk": "low"}},
            "finished_at": t0,
        }
        second = {
            "cookies": [_cookie("_ga", size=40), _cookie("sid")],
            "technologies": [],
            "statistics": {"risk_assessment": {"privacy_risk": "low", "compliance_risk": "high", "security_risk": "low"}},
            "finished_at": t0 + timedelta(days=3),
        }
        result = diff.compare(first, second)
        assert result["summary"]["days_between"] == 3
        assert result["summary"]["cookies_difference"] == 1
        assert result["changes"]["modified_cookies"][0]["changes"] == [
            {"field": "size", "old_value": 2, "new_value": 40},
        ]
        assert result["risk_comparison"]["privacy_risk"]["change"] == "improved"
        assert result["risk_comparison"]["compliance_risk"]["change"] == "worsened"
        assert result["risk_comparison"]["security_risk"]["change"] == "unchanged"
