# scanner/signals.py
"""
Raw signals as observed in the browser, before classification.

Each extractor kind has its own record type. Browser-evaluated objects are
loosely shaped dicts; the ``from_browser`` constructors are the single place
where they are validated and normalized, so the classifier only ever sees
well-formed values.
"""
from dataclasses import dataclass, field


def _str(value, default: str = "") -> str:
	if value is None:
		return default
	return str(value)


def _bool(value) -> bool:
	return bool(value)


@dataclass(frozen=True)
class RawCookie:
	name: str
	value: str
	domain: str
	path: str = "/"
	secure: bool = False
	http_only: bool = False
	same_site: str | None = None
	expires: float | None = None  # unix seconds, None for session cookies

	kind = "cookie"

	@classmethod
	def from_browser(cls, c: dict) -> "RawCookie":
		# Playwright reports session cookies with expires == -1
		expires = c.get("expires")
		if expires is None or expires == -1 or expires == 0:
			expires = None
		else:
			expires = float(expires)
		# Playwright reports "None" both for SameSite=None and for a missing
		# attribute; neither restricts cross-site sending, so both map to None.
		same_site = c.get("sameSite")
		if same_site not in ("Strict", "Lax"):
			same_site = None
		return cls(
			name=_str(c.get("name")),
			value=_str(c.get("value")),
			domain=_str(c.get("domain")),
			path=_str(c.get("path"), "/"),
			secure=_bool(c.get("secure")),
			http_only=_bool(c.get("httpOnly")),
			same_site=same_site,
			expires=expires,
		)

	@property
	def size(self) -> int:
		return len(self.name + self.value)


@dataclass(frozen=True)
class RawScript:
	src: str | None
	content: str | None = None
	type: str = "text/javascript"
	is_async: bool = False
	defer: bool = False

	kind = "script"

	@classmethod
	def from_browser(cls, s: dict) -> "RawScript":
		src = s.get("src") or None
		content = None if src else _str(s.get("content"))[:1000]
		return cls(
			src=src,
			content=content,
			type=_str(s.get("type"), "text/javascript") or "text/javascript",
			is_async=_bool(s.get("async")),
			defer=_bool(s.get("defer")),
		)

	@property
	def inline(self) -> bool:
		return not self.src


@dataclass(frozen=True)
class RawStorageEntry:
	area: str  # "local" | "session"
	key: str
	value: str

	kind = "storage"

	@classmethod
	def from_browser(cls, area: str, item: dict) -> "RawStorageEntry":
		return cls(area=area, key=_str(item.get("key")), value=_str(item.get("value")))

	@property
	def size(self) -> int:
		return len(self.key + self.value)


@dataclass(frozen=True)
class RawIframe:
	src: str
	sandbox: tuple = ()
	width: str = ""
	height: str = ""

	kind = "iframe"

	@classmethod
	def from_browser(cls, f: dict) -> "RawIframe":
		return cls(
			src=_str(f.get("src")),
			sandbox=tuple(_str(s) for s in (f.get("sandbox") or [])),
			width=_str(f.get("width")),
			height=_str(f.get("height")),
		)


@dataclass(frozen=True)
class RawFormField:
	name: str
	type: str
	required: bool = False
	placeholder: str = ""

	@classmethod
	def from_browser(cls, f: dict) -> "RawFormField":
		return cls(
			name=_str(f.get("name")),
			type=_str(f.get("type")),
			required=_bool(f.get("required")),
			placeholder=_str(f.get("placeholder")),
		)


@dataclass(frozen=True)
class RawForm:
	action: str
	method: str
	fields: tuple = ()

	kind = "form"

	@classmethod
	def from_browser(cls, f: dict) -> "RawForm":
		return cls(
			action=_str(f.get("action")),
			method=_str(f.get("method"), "get").lower(),
			fields=tuple(RawFormField.from_browser(x) for x in (f.get("fields") or []) if isinstance(x, dict)),
		)


@dataclass
class RawRequest:
	"""A network request seen while the page loaded; response fields fill in later."""
	url: str
	method: str
	resource_type: str
	initiator: str
	page_url: str
	started_at: float
	finished_at: float | None = None
	status: int | None = None
	size: int | None = None

	kind = "request"

	@property
	def duration_ms(self) -> float | None:
		if self.finished_at is None:
			return None
		return round((self.finished_at - self.started_at) * 1000, 1)


@dataclass(frozen=True)
class RawConsentHint:
	name: str
	source: str  # "global" | "selector"

	kind = "consent"


@dataclass(frozen=True)
class RawTechnologyHint:
	name: str
	category: str

	kind = "technology"


@dataclass
class RawSignals:
	"""Everything observed on one loaded page."""
	url: str
	cookies: list = field(default_factory=list)
	scripts: list = field(default_factory=list)
	storage: list = field(default_factory=list)
	iframes: list = field(default_factory=list)
	forms: list = field(default_factory=list)
	consent_hints: list = field(default_factory=list)
	tcf: dict | None = None
	technologies: list = field(default_factory=list)
	requests: list = field(default_factory=list)
	errors: list = field(default_factory=list)
