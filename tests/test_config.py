"""Tests for scanner.config: analysis configuration parsing and limits."""

from __future__ import annotations

import pytest

from scanner.config import USER_AGENT, AnalysisConfig
from scanner.exceptions import InvalidAnalysisConfig


class TestFromPayload:
    """Tests for AnalysisConfig.from_payload()."""

    def test_defaults(self) -> None:
        config = AnalysisConfig.from_payload(None)
        assert config.scan_type == "full"
        assert config.depth == 5
        assert config.max_urls == 100
        assert config.include_subdomains is True
        assert config.viewport == {"width": 1920, "height": 1080}
        assert config.user_agent == USER_AGENT

    def test_camel_case_aliases(self) -> None:
        config = AnalysisConfig.from_payload({"maxUrls": "7", "includeSubdomains": False})
        assert config.max_urls == 7
        assert config.include_subdomains is False

    def test_clamped_to_limits(self, settings) -> None:
        config = AnalysisConfig.from_payload({"depth": 99, "max_urls": 50000})
        assert config.depth == settings.ANALYSIS["MAX_DEPTH_LIMIT"]
        assert config.max_urls == settings.ANALYSIS["MAX_URLS_LIMIT"]

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("false", False), ("False", False), ("0", False), ("true", True), ("yes", True), (False, False), (1, True)],
    )
    def test_include_subdomains_strings(self, raw, expected: bool) -> None:
        assert AnalysisConfig.from_payload({"include_subdomains": raw}).include_subdomains is expected

    def test_bare_language_string(self) -> None:
        assert AnalysisConfig.from_payload({"accept_languages": "en-US"}).accept_languages == ("en-US",)
        assert AnalysisConfig.from_payload({"accept_languages": "de-DE, en"}).accept_languages == ("de-DE", "en")

    @pytest.mark.parametrize(
        "payload",
        [
            {"depth": "deep"},
            {"depth": 0},
            {"max_urls": -1},
            {"scan_type": "nuclear"},
            {"viewport": {"width": 100}},
            {"include_subdomains": "maybe"},
        ],
    )
    def test_invalid(self, payload: dict) -> None:
        with pytest.raises(InvalidAnalysisConfig):
            AnalysisConfig.from_payload(payload)

    def test_to_dict_round_trips(self) -> None:
        config = AnalysisConfig.from_payload({"depth": 2, "accept_languages": ["de-DE"]})
        data = config.to_dict()
        assert data["accept_languages"] == ["de-DE"]
        assert AnalysisConfig.from_payload(data) == config
