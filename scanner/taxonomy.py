# scanner/taxonomy.py
"""
Static pattern tables used to classify every signal the crawler observes.

Everything here is immutable: tuples of compiled patterns wrapped in frozen
dataclasses. ``get_taxonomy()`` builds the tables once per process and the
same instance is shared by every concurrent analysis.

Table order matters. Classification walks each table top to bottom and the
first match wins, so e.g. ``necessary`` beats ``functional`` for a cookie
matching both.
"""
import re
from dataclasses import dataclass
from functools import lru_cache

CATEGORIES = ("necessary", "functional", "analytics", "advertising", "social", "unknown")


def _compile(*patterns, flags=0):
	return tuple(re.compile(p, flags) for p in patterns)


@dataclass(frozen=True)
class PatternGroup:
	"""A label plus the patterns that select it."""
	label: str
	patterns: tuple

	def matches(self, text: str) -> bool:
		return any(p.search(text) for p in self.patterns)


@dataclass(frozen=True)
class Provider:
	name: str
	domain: str
	category: str
	cookie_patterns: tuple
	script_patterns: tuple


@dataclass(frozen=True)
class TechnologyProbe:
	"""A JS expression evaluated in the page; truthy means the technology is present."""
	name: str
	category: str
	expression: str


@dataclass(frozen=True)
class Taxonomy:
	cookie_categories: tuple
	cookie_domain_hints: tuple
	providers: tuple
	consent_platforms: tuple
	consent_globals: tuple
	consent_selectors: tuple
	script_categories: tuple
	script_providers: tuple
	script_content_categories: tuple
	script_tracking_patterns: tuple
	script_consent_patterns: tuple
	iframe_purposes: tuple
	request_purposes: tuple
	pixel_providers: tuple
	storage_purposes: tuple
	pii_value_patterns: tuple
	tracking_value_patterns: tuple
	encoding_patterns: tuple
	pii_field_patterns: tuple
	technologies: tuple


def build_taxonomy() -> Taxonomy:
	return Taxonomy(
		cookie_categories=(
			PatternGroup("necessary", _compile(
				r"^(csrf|session|auth|secure|__Secure-|__Host-)", r"_csrf$", r"^XSRF-TOKEN$", r"^laravel_session$",
				flags=re.I,
			)),
			PatternGroup("functional", _compile(
				r"^(prefs|settings|language|timezone|display|theme)", r"_preferences$", r"^ui-", r"^remember_",
				flags=re.I,
			)),
			PatternGroup("analytics", _compile(
				r"^(_ga|_gid|_gat|__utm|_dc_gtm_)", r"^_pk_", r"^amplitude", r"^mp_", r"^mixpanel",
				r"^_hjid|_hjAbsoluteSessionInProgress",
				flags=re.I,
			)),
			PatternGroup("advertising", _compile(
				r"^(_fbp|_fbc|fr)", r"^(_gcl|_gac)", r"^pinterest_", r"^_ttp", r"^ide|test_cookie",
				r"^doubleclick", r"^adroll", r"^_uuid",
				flags=re.I,
			)),
			PatternGroup("social", _compile(
				r"^(facebook|fb_|twitter|linkedin|instagram)", r"^social_", r"^share_",
				flags=re.I,
			)),
		),
		# Fallback when no name pattern matched: substring of the cookie domain.
		cookie_domain_hints=(
			("google", "analytics"),
			("facebook", "social"),
			("doubleclick", "advertising"),
		),
		providers=(
			Provider(
				"Google Analytics", "google.com", "analytics",
				_compile(r"_ga", r"_gid", r"_gat", r"__utm"),
				_compile(r"google-analytics\.com", r"googletagmanager\.com"),
			),
			Provider(
				"Facebook", "facebook.com", "social",
				_compile(r"_fbp", r"_fbc", r"^fr$"),
				_compile(r"connect\.facebook\.net", r"facebook\.com/tr"),
			),
			Provider(
				"Google Ads", "google.com", "advertising",
				_compile(r"_gcl", r"_gac", r"ide", r"test_cookie"),
				_compile(r"googleadservices\.com", r"googlesyndication\.com"),
			),
			Provider(
				"Hotjar", "hotjar.com", "analytics",
				_compile(r"_hjid", r"_hjAbsoluteSessionInProgress"),
				_compile(r"hotjar\.com"),
			),
			Provider(
				"TikTok", "tiktok.com", "social",
				_compile(r"_ttp"),
				_compile(r"tiktok\.com"),
			),
		),
		consent_platforms=(
			PatternGroup("OneTrust", _compile(r"onetrust", r"optanon", flags=re.I)),
			PatternGroup("Cookiebot", _compile(r"cookiebot", flags=re.I)),
			PatternGroup("TrustArc", _compile(r"trustarc", r"truste", flags=re.I)),
			PatternGroup("Cookie Consent", _compile(r"cookieconsent", flags=re.I)),
			PatternGroup("Quantcast", _compile(r"quantcast", flags=re.I)),
		),
		consent_globals=("OneTrust", "Cookiebot", "TrustArc", "__tcfapi", "__cmp"),
		consent_selectors=(
			('[id*="onetrust"]', "onetrust"), ('[class*="onetrust"]', "onetrust"),
			('[id*="cookiebot"]', "cookiebot"), ('[class*="cookiebot"]', "cookiebot"),
			('[id*="trustarc"]', "trustarc"), ('[class*="trustarc"]', "trustarc"),
		),
		script_categories=(
			PatternGroup("analytics", _compile(r"google-analytics", r"googletagmanager", r"hotjar", r"mixpanel")),
			PatternGroup("advertising", _compile(r"doubleclick", r"googlesyndication", r"googleadservices")),
			PatternGroup("social", _compile(r"facebook", r"twitter", r"linkedin", r"pinterest")),
			PatternGroup("functionality", _compile(r"jquery", r"bootstrap", r"lodash")),
			PatternGroup("security", _compile(r"recaptcha", r"cloudflare")),
		),
		script_providers=(
			("google-analytics.com", "Google Analytics"),
			("googletagmanager.com", "Google Tag Manager"),
			("googlesyndication.com", "Google Ads"),
			("facebook.net", "Facebook"),
			("hotjar.com", "Hotjar"),
			("mixpanel.com", "Mixpanel"),
		),
		script_content_categories=(
			PatternGroup("analytics", _compile(r"analytics", r"tracking", r"gtag", r"_gaq")),
			PatternGroup("advertising", _compile(r"doubleclick", r"googletag", r"advertisement")),
			PatternGroup("social", _compile(r"facebook", r"twitter", r"linkedin")),
			PatternGroup("functionality", _compile(r"jquery", r"function", r"document\.ready")),
		),
		script_tracking_patterns=_compile(
			r"track\(", r"analytics", r"pixel", r"beacon", r"user.*id", r"session.*id", r"visitor.*id",
			flags=re.I,
		),
		script_consent_patterns=_compile(
			r"consent", r"cookie.*banner", r"privacy", r"gdpr", r"onetrust", r"cookiebot", r"trustarc",
			flags=re.I,
		),
		iframe_purposes=(
			PatternGroup("advertising", _compile(r"doubleclick", r"googlesyndication", r"ads")),
			PatternGroup("social", _compile(r"facebook", r"twitter", r"youtube", r"instagram")),
			PatternGroup("analytics", _compile(r"google-analytics", r"hotjar")),
			PatternGroup("payment", _compile(r"paypal", r"stripe", r"square")),
			PatternGroup("maps", _compile(r"maps\.google", r"openstreetmap")),
		),
		request_purposes=(
			PatternGroup("analytics", _compile(r"analytics", r"tracking", r"stats", r"metrics")),
			PatternGroup("advertising", _compile(r"ads", r"doubleclick", r"googlesyndication", r"advertisement")),
			PatternGroup("social", _compile(r"facebook\.com/tr", r"twitter\.com", r"linkedin\.com", r"pinterest\.com")),
			PatternGroup("attribution", _compile(r"attribution", r"conversion", r"pixel")),
		),
		pixel_providers=(
			("facebook.com", "Facebook"),
			("google-analytics.com", "Google Analytics"),
			("doubleclick.net", "Google Ads"),
			("linkedin.com", "LinkedIn"),
			("pinterest.com", "Pinterest"),
		),
		storage_purposes=(
			PatternGroup("auth", _compile(r"^(auth|token|session|login)", flags=re.I)),
			PatternGroup("preferences", _compile(r"^(pref|setting|config|theme)", flags=re.I)),
			PatternGroup("analytics", _compile(r"^(analytics|tracking|stats)", flags=re.I)),
			PatternGroup("cart", _compile(r"^(cart|basket|shopping)", flags=re.I)),
		),
		pii_value_patterns=_compile(
			r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b",  # email
			r"\b\d{3}-\d{2}-\d{4}\b",  # SSN
			r"\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}\b",  # credit card
			r"\b\d{10,}\b",  # phone-like digit run
		),
		tracking_value_patterns=_compile(
			r"^GA\d+\.\d+\.\d+\.\d+$",
			r"^[0-9a-f]{32}$",
			r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
			r"^\d{13,}$",
		),
		encoding_patterns=_compile(
			r"^[A-Za-z0-9+/]+=*$",  # base64
			r"^[0-9a-fA-F]+$",  # hex
			r"^[A-Za-z0-9_-]{20,}$",  # token
		),
		pii_field_patterns=_compile(
			r"email", r"mail", r"phone", r"tel", r"name", r"address", r"ssn", r"social", r"birth", r"age",
			flags=re.I,
		),
		technologies=(
			TechnologyProbe("jQuery", "JavaScript Framework", "typeof window.jQuery !== 'undefined'"),
			TechnologyProbe("React", "JavaScript Framework", "typeof window.React !== 'undefined'"),
			TechnologyProbe("Vue", "JavaScript Framework", "typeof window.Vue !== 'undefined'"),
			TechnologyProbe("Angular", "JavaScript Framework", "typeof window.angular !== 'undefined'"),
			TechnologyProbe("Bootstrap", "JavaScript Framework", "typeof window.bootstrap !== 'undefined'"),
			TechnologyProbe(
				"Google Analytics", "Analytics",
				"typeof window.gtag !== 'undefined' || typeof window.ga !== 'undefined'",
			),
			TechnologyProbe("Google Tag Manager", "Analytics", "typeof window.dataLayer !== 'undefined'"),
			TechnologyProbe("Hotjar", "Analytics", "typeof window.hj !== 'undefined'"),
			TechnologyProbe("Mixpanel", "Analytics", "typeof window.mixpanel !== 'undefined'"),
		),
	)


@lru_cache(maxsize=1)
def get_taxonomy() -> Taxonomy:
	"""Process-wide shared taxonomy, built on first use."""
	return build_taxonomy()
