"""Tests for scanner.classifier: cookie, script, request and consent classification."""

from __future__ import annotations

import pytest

from scanner.classifier import SignalClassifier, base_domain
from scanner.signals import RawConsentHint, RawRequest, RawScript
from scanner.taxonomy import get_taxonomy

DAY = 86400


@pytest.fixture()
def classifier() -> SignalClassifier:
    return SignalClassifier()


class TestCategorizeCookie:
    """Tests for SignalClassifier.categorize_cookie()."""

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("_ga", "analytics"),
            ("_gid", "analytics"),
            ("__utma", "analytics"),
            ("session_id", "necessary"),
            ("csrftoken", "necessary"),
            ("__Host-token", "necessary"),
            ("_fbp", "advertising"),
            ("_gcl_au", "advertising"),
            ("language", "functional"),
            ("twitter_sess", "social"),
            ("zz_custom", "unknown"),
        ],
    )
    def test_name_patterns(self, classifier: SignalClassifier, name: str, expected: str) -> None:
        assert classifier.categorize_cookie(name) == expected

    def test_table_order_breaks_ties(self, classifier: SignalClassifier) -> None:
        # matches both necessary and functional
        assert classifier.categorize_cookie("secure_preferences") == "necessary"

    def test_domain_hint_fallback(self, classifier: SignalClassifier) -> None:
        assert classifier.categorize_cookie("xyz", ".doubleclick.net") == "advertising"

    def test_deterministic(self, classifier: SignalClassifier) -> None:
        other = SignalClassifier(get_taxonomy())
        for name in ("_ga", "session_id", "_fbp", "nope"):
            assert classifier.categorize_cookie(name) == other.categorize_cookie(name)


class TestIdentifyProvider:
    """Tests for SignalClassifier.identify_provider()."""

    @pytest.mark.parametrize(
        ("name", "provider"),
        [
            ("_ga", "Google Analytics"),
            ("_fbp", "Facebook"),
            ("zz_custom", "Unknown"),
        ],
    )
    def test_known_and_unknown(self, classifier: SignalClassifier, name: str, provider: str) -> None:
        assert classifier.identify_provider(name, ".example.com")["name"] == provider

    @pytest.mark.parametrize("name", ["_ga", "_gid", "_fbp", "session_id", "zz_custom"])
    def test_idempotent(self, classifier: SignalClassifier, name: str) -> None:
        first = classifier.identify_provider(name, ".example.com")
        assert classifier.identify_provider(name, ".example.com") == first
        assert SignalClassifier(get_taxonomy()).identify_provider(name, ".example.com") == first

    def test_unknown_keeps_cookie_domain(self, classifier: SignalClassifier) -> None:
        assert classifier.identify_provider("zz_custom", ".example.com") == {
            "name": "Unknown",
            "domain": ".example.com",
            "category": "unknown",
        }


class TestDurationBucket:
    """Tests for SignalClassifier.duration_bucket()."""

    @pytest.mark.parametrize(
        ("offset", "expected"),
        [
            (None, "session"),
            (3600, "session"),
            (15 * DAY, "persistent"),
            (30 * DAY, "persistent"),
            (31 * DAY, "long-term"),
            (365 * DAY, "long-term"),
        ],
    )
    def test_buckets(self, now: float, offset, expected: str) -> None:
        expires = None if offset is None else now + offset
        assert SignalClassifier.duration_bucket(expires, now) == expected


class TestCompliance:
    """Tests for the GDPR/CCPA compliance predicates."""

    def test_necessary_always_gdpr_compliant(self) -> None:
        assert SignalClassifier.gdpr_compliant("necessary", False, None, "long-term") is True

    def test_insecure_long_term_analytics_not_compliant(self) -> None:
        assert SignalClassifier.gdpr_compliant("analytics", False, None, "long-term") is False

    def test_missing_same_site_not_compliant(self) -> None:
        assert SignalClassifier.gdpr_compliant("analytics", True, None, "persistent") is False

    def test_secure_same_site_short_lived_compliant(self) -> None:
        assert SignalClassifier.gdpr_compliant("analytics", True, "Lax", "persistent") is True

    @pytest.mark.parametrize(
        ("category", "pii", "expected"),
        [
            ("analytics", False, True),
            ("analytics", True, False),
            ("necessary", True, True),
        ],
    )
    def test_ccpa(self, category: str, pii: bool, expected: bool) -> None:
        assert SignalClassifier.ccpa_compliant(category, pii) is expected


class TestFirstParty:
    """Tests for registrable-domain first-party detection."""

    @pytest.mark.parametrize(
        ("cookie_domain", "page_url", "expected"),
        [
            (".example.com", "https://example.com/", True),
            ("shop.example.com", "https://www.example.com/about", True),
            (".google-analytics.com", "https://example.com/", False),
            ("example.co.uk", "https://www.example.co.uk/", True),
            ("other.co.uk", "https://example.co.uk/", False),
        ],
    )
    def test_is_first_party(self, cookie_domain: str, page_url: str, expected: bool) -> None:
        assert SignalClassifier.is_first_party(cookie_domain, page_url) is expected

    def test_base_domain_strips_leading_dot(self) -> None:
        assert base_domain(".www.example.com") == "example.com"


class TestClassifyCookie:
    """Tests for SignalClassifier.classify_cookie()."""

    def test_ga_cookie(self, classifier: SignalClassifier, ga_cookie, now: float) -> None:
        data = classifier.classify_cookie(ga_cookie, "https://example.com/", now)
        assert data["category"] == "analytics"
        assert data["provider"]["name"] == "Google Analytics"
        assert data["duration"] == "persistent"
        assert data["session"] is False
        assert data["is_first_party"] is True
        assert data["contains_tracking_data"] is True
        assert data["gdpr_compliant"] is False
        assert data["found_on_urls"] == ["https://example.com/"]

    def test_session_cookie(self, classifier: SignalClassifier, session_cookie, now: float) -> None:
        data = classifier.classify_cookie(session_cookie, "https://example.com/", now)
        assert data["category"] == "necessary"
        assert data["duration"] == "session"
        assert data["expires"] is None
        assert data["gdpr_compliant"] is True

    def test_pii_value(self, classifier: SignalClassifier) -> None:
        assert classifier.detect_pii("user=jane@example.com") is True
        assert classifier.detect_pii("abc") is False


class TestClassifyScript:
    """Tests for script classification."""

    def test_external_analytics(self, classifier: SignalClassifier) -> None:
        raw = RawScript(src="https://www.google-analytics.com/analytics.js", is_async=True)
        data = classifier.classify_script(raw, "https://example.com/")
        assert data["type"] == "external"
        assert data["category"] == "analytics"
        assert data["provider"]["name"] == "Google Analytics"
        assert data["load_type"] == "async"

    def test_inline_content(self, classifier: SignalClassifier) -> None:
        raw = RawScript(src=None, content="gtag('config', 'G-1'); track(visitor_id)")
        data = classifier.classify_script(raw, "https://example.com/")
        assert data["type"] == "inline"
        assert data["category"] == "analytics"
        assert data["has_tracking"] is True


class TestClassifyRequest:
    """Tests for network request and tracking pixel classification."""

    def _request(self, url: str, resource_type: str = "xhr") -> RawRequest:
        return RawRequest(
            url=url,
            method="GET",
            resource_type=resource_type,
            initiator="https://example.com/",
            page_url="https://example.com/",
            started_at=10.0,
            finished_at=10.25,
        )

    def test_first_party_api_ignored(self, classifier: SignalClassifier) -> None:
        request, pixel = classifier.classify_request(self._request("https://example.com/api/items"))
        assert request is None
        assert pixel is None

    def test_analytics_request(self, classifier: SignalClassifier) -> None:
        request, pixel = classifier.classify_request(self._request("https://www.google-analytics.com/g/collect"))
        assert request["tracking_purpose"] == "analytics"
        assert request["timing"]["duration"] == 250.0
        assert pixel is None

    def test_facebook_pixel(self, classifier: SignalClassifier) -> None:
        request, pixel = classifier.classify_request(
            self._request("https://www.facebook.com/tr/pixel?id=1", "image")
        )
        assert request["tracking_purpose"] == "social"
        assert pixel["provider"] == "Facebook"


class TestConsentPlatforms:
    """Tests for consent platform naming."""

    def test_hints_grouped_by_platform(self, classifier: SignalClassifier) -> None:
        hints = [
            RawConsentHint("OneTrust", "global"),
            RawConsentHint("onetrust", "selector"),
            RawConsentHint("cookiebot", "selector"),
        ]
        platforms = classifier.consent_platforms(hints)
        assert [p["name"] for p in platforms] == ["OneTrust", "Cookiebot"]
        assert all(p["detected"] for p in platforms)

    def test_tcf_flag(self, classifier: SignalClassifier) -> None:
        platforms = classifier.consent_platforms([RawConsentHint("__tcfapi", "global")], {"consent_string": "CP"})
        assert platforms == [{"name": "__tcfapi", "detected": True, "tcf_compliant": True}]
