"""Shared fixtures for the test suite."""

from __future__ import annotations

import time

import pytest

from scanner.browser import NavigationError
from scanner.discovery import normalize_url
from scanner.extractor import (
    FORMS_JS,
    IFRAMES_JS,
    SCRIPTS_JS,
    STORAGE_JS,
    TCF_JS,
    consent_script,
    technology_script,
)
from scanner.signals import RawCookie
from scanner.taxonomy import get_taxonomy

DAY = 86400


# ── Fake browser ────────────────────────────────────────────────


class FakePage:
    """Stands in for ``PageHandle``; serves pages from a ``FakeSite`` dict."""

    def __init__(self, site: dict, session: "FakeSession"):
        self._site = site
        self._session = session
        self._current = None
        self.closed = False
        self.handlers = {}

    def on_request(self, callback):
        self.handlers["request"] = callback

    def on_response(self, callback):
        self.handlers["response"] = callback

    def on_request_finished(self, callback):
        self.handlers["requestfinished"] = callback

    def navigate(self, url, timeout_ms, cancel_token=None):
        if cancel_token is not None and cancel_token.cancelled:
            return None
        self._session.visits.append(url)
        key = normalize_url(url)
        if key not in self._site:
            raise NavigationError(url, "Domain name could not be resolved")
        self._current = key
        return self._site[key].get("status", 200)

    def settle(self, ms):
        pass

    @property
    def url(self):
        return self._current

    def _page(self) -> dict:
        return self._site.get(self._current, {})

    def cookies(self):
        return list(self._page().get("cookies", []))

    def evaluate(self, script, arg=None):
        page = self._page()
        if script == STORAGE_JS:
            return page.get("storage", {"local": [], "session": []})
        if script == SCRIPTS_JS:
            return page.get("scripts", [])
        if script == IFRAMES_JS:
            return page.get("iframes", [])
        if script == FORMS_JS:
            return page.get("forms", [])
        if script == TCF_JS:
            return page.get("tcf")
        if script == consent_script(get_taxonomy()):
            return page.get("consent", [])
        if script == technology_script(get_taxonomy()):
            return page.get("technologies", [])
        raise AssertionError(f"unexpected script: {script[:60]}")

    def links(self):
        return list(self._page().get("links", []))

    def close(self):
        self.closed = True


class FakeSession:
    """Stands in for ``BrowserSession``."""

    def __init__(self, site: dict):
        self.site = site
        self.pages = []
        self.visits = []
        self.closed = False

    def new_page(self):
        page = FakePage(self.site, self)
        self.pages.append(page)
        return page

    def close(self):
        self.closed = True


@pytest.fixture()
def fake_session_factory():
    """Returns ``make(site) -> session_factory`` for ``AnalysisOrchestrator``."""

    def make(site: dict):
        session = FakeSession(site)

        def factory(config):
            return session

        factory.session = session
        return factory

    return make


@pytest.fixture()
def one_page_site() -> dict:
    """A single page setting a Google Analytics cookie and no consent platform."""
    return {
        "https://example.com/": {
            "status": 200,
            "cookies": [
                {
                    "name": "_ga",
                    "value": "GA1.2.1.1",
                    "domain": ".example.com",
                    "path": "/",
                    "expires": time.time() + 30 * DAY,
                    "httpOnly": False,
                    "secure": True,
                    "sameSite": "None",
                },
            ],
        },
    }


@pytest.fixture()
def fast_analysis(settings):
    """No settle waits or pauses between pages."""
    settings.ANALYSIS = {
        **settings.ANALYSIS,
        "SETTLE_MS": 0,
        "PAUSE_MS_BETWEEN_PAGES": 0,
        "PROBE_TIMEOUT_MS": 10,
    }
    return settings.ANALYSIS


# ── Raw signal factories ────────────────────────────────────────


@pytest.fixture()
def now() -> float:
    return 1_700_000_000.0


@pytest.fixture()
def ga_cookie(now) -> RawCookie:
    """A Google Analytics cookie expiring in 15 days."""
    return RawCookie(
        name="_ga",
        value="GA1.2.1.1",
        domain=".example.com",
        secure=True,
        same_site=None,
        expires=now + 15 * DAY,
    )


@pytest.fixture()
def session_cookie() -> RawCookie:
    return RawCookie(
        name="session_id",
        value="abc123",
        domain="example.com",
        secure=True,
        http_only=True,
        same_site="Lax",
    )


@pytest.fixture()
def classified_cookie() -> dict:
    """A classified cookie dict as stored on an analysis."""
    return {
        "name": "_ga",
        "domain": ".example.com",
        "value": "GA1.2.1.1",
        "secure": True,
        "http_only": False,
        "same_site": None,
        "expires": None,
        "session": False,
        "is_first_party": True,
        "size": 12,
        "category": "analytics",
        "provider": {"name": "Google Analytics", "domain": "google.com", "category": "analytics"},
        "duration": "persistent",
        "contains_pii": False,
        "contains_tracking_data": True,
        "gdpr_compliant": False,
        "ccpa_compliant": True,
    }


# ── Database fixtures ───────────────────────────────────────────


@pytest.fixture()
def user(django_user_model):
    return django_user_model.objects.create_user(username="owner", email="owner@example.com", password="pw")


@pytest.fixture()
def other_user(django_user_model):
    return django_user_model.objects.create_user(username="stranger", email="stranger@example.com", password="pw")


@pytest.fixture()
def domain(user):
    from domains.models import Domain

    return Domain.objects.create(user=user, url="https://example.com")


@pytest.fixture()
def make_analysis(domain):
    """Factory for ``Analysis`` rows on the default domain."""
    from scanner.models import Analysis

    def make(**fields):
        fields.setdefault("domain", domain)
        fields.setdefault("hostname", fields["domain"].hostname)
        fields.setdefault("config", {"depth": 1, "max_urls": 5, "include_subdomains": False})
        return Analysis.objects.create(**fields)

    return make


@pytest.fixture()
def api_client(user):
    from rest_framework.test import APIClient

    client = APIClient()
    client.force_authenticate(user=user)
    return client
