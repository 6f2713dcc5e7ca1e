"""Tests for scanner.signals: normalization of browser-reported objects."""

from __future__ import annotations

import pytest

from scanner.signals import RawCookie, RawForm, RawRequest, RawScript


class TestRawCookie:
    """Tests for RawCookie.from_browser()."""

    @pytest.mark.parametrize(
        ("reported", "expected"),
        [
            ("Strict", "Strict"),
            ("Lax", "Lax"),
            ("None", None),
            (None, None),
            ("bogus", None),
        ],
    )
    def test_same_site_normalized(self, reported, expected) -> None:
        cookie = RawCookie.from_browser({"name": "a", "value": "b", "domain": "x.com", "sameSite": reported})
        assert cookie.same_site == expected

    @pytest.mark.parametrize("expires", [-1, 0, None])
    def test_session_markers(self, expires) -> None:
        cookie = RawCookie.from_browser({"name": "a", "value": "b", "domain": "x.com", "expires": expires})
        assert cookie.expires is None

    def test_flags_and_size(self) -> None:
        cookie = RawCookie.from_browser({
            "name": "sid",
            "value": "12345",
            "domain": "x.com",
            "secure": 1,
            "httpOnly": True,
            "expires": 1700000000,
        })
        assert cookie.secure is True
        assert cookie.http_only is True
        assert cookie.expires == 1700000000.0
        assert cookie.size == 8


class TestRawScript:
    """Tests for RawScript.from_browser()."""

    def test_external_drops_content(self) -> None:
        script = RawScript.from_browser({"src": "https://cdn.example.com/app.js", "content": "x", "async": True})
        assert script.inline is False
        assert script.content is None
        assert script.is_async is True

    def test_inline_content_truncated(self) -> None:
        script = RawScript.from_browser({"src": None, "content": "a" * 5000})
        assert script.inline is True
        assert len(script.content) == 1000


class TestRawForm:
    """Tests for RawForm.from_browser()."""

    def test_method_lowercased_and_fields_parsed(self) -> None:
        form = RawForm.from_browser({
            "action": "https://example.com/signup",
            "method": "POST",
            "fields": [{"name": "email", "type": "email", "required": True}, "garbage"],
        })
        assert form.method == "post"
        assert len(form.fields) == 1
        assert form.fields[0].required is True


class TestRawRequest:
    """Tests for RawRequest.duration_ms."""

    def test_unfinished_has_no_duration(self) -> None:
        raw = RawRequest("https://a.com", "GET", "xhr", "unknown", "https://a.com/", started_at=1.0)
        assert raw.duration_ms is None

    def test_duration(self) -> None:
        raw = RawRequest("https://a.com", "GET", "xhr", "unknown", "https://a.com/", started_at=1.0, finished_at=1.5)
        assert raw.duration_ms == 500.0
