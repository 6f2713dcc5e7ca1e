# scanner/config.py
"""
Analysis configuration: defaults, limits and validation of the payload the
API layer (or the scheduler) hands to ``start_analysis``.
"""
from dataclasses import dataclass, field, asdict

from django.conf import settings

from scanner.exceptions import InvalidAnalysisConfig

SCAN_TYPES = ("quick", "full", "deep", "custom")

USER_AGENT = (
	"Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
	"AppleWebKit/537.36 (KHTML, like Gecko) "
	"Chrome/120.0.0.0 Safari/537.36"
)


def analysis_setting(name: str):
	return settings.ANALYSIS[name]


def _flag(value) -> bool:
	if isinstance(value, str):
		text = value.strip().lower()
		if text in ("1", "true", "yes", "on"):
			return True
		if text in ("0", "false", "no", "off", ""):
			return False
		raise InvalidAnalysisConfig(f"Not a boolean: '{value}'")
	return bool(value)


@dataclass(frozen=True)
class AnalysisConfig:
	scan_type: str = "full"
	depth: int = 5
	max_urls: int = 100
	include_subdomains: bool = True
	timeout_ms: int = 30000
	viewport: dict = field(default_factory=lambda: {"width": 1920, "height": 1080})
	accept_languages: tuple = ("en-US", "en")
	retries: int = 3
	user_agent: str = USER_AGENT

	@classmethod
	def from_payload(cls, data: dict | None) -> "AnalysisConfig":
		"""Build a config from loosely typed input, clamping to the configured limits."""
		data = dict(data or {})
		try:
			depth = int(data.get("depth", 5))
			max_urls = int(data.get("max_urls", data.get("maxUrls", 100)))
			timeout_ms = int(data.get("timeout_ms", data.get("timeout", analysis_setting("DEFAULT_TIMEOUT_MS"))))
			retries = int(data.get("retries", analysis_setting("RETRY_MAX_ATTEMPTS")))
		except (TypeError, ValueError) as e:
			raise InvalidAnalysisConfig(f"Invalid numeric value in analysis config: {e}") from e

		scan_type = data.get("scan_type", "full")
		if scan_type not in SCAN_TYPES:
			raise InvalidAnalysisConfig(f"Unknown scan type '{scan_type}'")
		if depth < 1 or max_urls < 1 or timeout_ms < 1:
			raise InvalidAnalysisConfig("depth, max_urls and timeout_ms must be positive")

		viewport = data.get("viewport") or {"width": 1920, "height": 1080}
		if not isinstance(viewport, dict) or not {"width", "height"} <= set(viewport):
			raise InvalidAnalysisConfig("viewport must have width and height")

		include = data.get("include_subdomains", data.get("includeSubdomains", True))
		languages = data.get("accept_languages") or ("en-US", "en")
		if isinstance(languages, str):
			languages = [lang.strip() for lang in languages.split(",") if lang.strip()]

		return cls(
			scan_type=scan_type,
			depth=min(depth, analysis_setting("MAX_DEPTH_LIMIT")),
			max_urls=min(max_urls, analysis_setting("MAX_URLS_LIMIT")),
			include_subdomains=_flag(include),
			timeout_ms=timeout_ms,
			viewport={"width": int(viewport["width"]), "height": int(viewport["height"])},
			accept_languages=tuple(languages),
			retries=max(retries, 1),
			user_agent=data.get("user_agent") or USER_AGENT,
		)

	def to_dict(self) -> dict:
		d = asdict(self)
		d["accept_languages"] = list(self.accept_languages)
		return d
