# scanner/orchestrator.py
"""
Drives one analysis run end to end.

    initialization -> discovery -> analysis -> processing -> finalization

The orchestrator owns its ``Analysis`` record and one ``BrowserSession`` for
the whole run. Per-URL problems are recorded and skipped; anything else is
run-fatal and moves the record to ``failed``. Cancellation is cooperative:
the stored status is polled between pages and between discovery
navigations, and signals collected so far are kept.

Retries are not handled here.
"""
import hashlib
import logging
import time

from django.db.models import Q
from django.utils import timezone
from playwright.sync_api import Error as PlaywrightError

from domains.models import Domain
from scanner import lifecycle, risk
from scanner.browser import BrowserSession, NavigationError
from scanner.classifier import SignalClassifier
from scanner.config import AnalysisConfig, analysis_setting
from scanner.diff import detect_changes
from scanner.discovery import discover
from scanner.exceptions import AnalysisFailed, AnalysisInProgress, InvalidTransition
from scanner.extractor import RequestRecorder, extract
from scanner.models import Analysis

logger = logging.getLogger("scanner")


def _merge_urls(existing: list, url: str) -> list:
	return existing if url in existing else existing + [url]


class SignalAccumulator:
	"""Classified signals of a run, deduplicated across pages."""

	def __init__(self, classifier: SignalClassifier):
		self.classifier = classifier
		self.cookies = {}
		self.scripts = {}
		self.iframes = {}
		self.forms = {}
		self.storage = {"local": {}, "session": {}}
		self.network_requests = []
		self.tracking_pixels = {}
		self.technologies = {}
		self.consent_platforms = {}
		self.consent_string = None

	def add_cookie(self, data: dict, seen_at: str):
		key = (data["name"], data["domain"])
		existing = self.cookies.get(key)
		if existing is None:
			self.cookies[key] = {**data, "first_seen": seen_at, "last_seen": seen_at, "frequency": 1}
			return
		urls = existing["found_on_urls"]
		for url in data["found_on_urls"]:
			urls = _merge_urls(urls, url)
		self.cookies[key] = {
			**existing,
			**data,
			"found_on_urls": urls,
			"first_seen": existing["first_seen"],
			"last_seen": seen_at,
			"frequency": existing["frequency"] + 1,
		}

	def _add_keyed(self, bucket: dict, key, data: dict, url: str):
		if key in bucket:
			bucket[key]["found_on_urls"] = _merge_urls(bucket[key]["found_on_urls"], url)
		else:
			bucket[key] = data

	def add_page(self, signals, now: float | None = None):
		c = self.classifier
		url = signals.url
		now = time.time() if now is None else now
		seen_at = timezone.now().isoformat()

		for raw in signals.cookies:
			self.add_cookie(c.classify_cookie(raw, url, now), seen_at)

		for raw in signals.scripts:
			if raw.inline:
				key = "inline:" + hashlib.sha1((raw.content or "").encode("utf-8")).hexdigest()
			else:
				key = raw.src
			self._add_keyed(self.scripts, key, c.classify_script(raw, url), url)

		for raw in signals.iframes:
			self._add_keyed(self.iframes, raw.src, c.classify_iframe(raw, url), url)

		for raw in signals.forms:
			key = (raw.action, raw.method, url)
			self.forms.setdefault(key, c.classify_form(raw, url))

		for raw in signals.storage:
			self._add_keyed(self.storage[raw.area], raw.key, c.classify_storage(raw, url), url)

		for raw in signals.requests:
			request, pixel = c.classify_request(raw)
			if request is not None:
				self.network_requests.append(request)
			if pixel is not None:
				self._add_keyed(self.tracking_pixels, raw.url, pixel, raw.page_url)

		for tech in signals.technologies:
			self.technologies.setdefault(tech.name, {
				"name": tech.name,
				"category": tech.category,
				"confidence": 100,
				"source": url,
			})

		for platform in c.consent_platforms(signals.consent_hints, signals.tcf):
			self.consent_platforms.setdefault(platform["name"], platform)
		if signals.tcf and signals.tcf.get("consent_string"):
			self.consent_string = signals.tcf["consent_string"]

	@property
	def consent_detected(self) -> bool:
		return bool(self.consent_platforms)

	def to_fields(self) -> dict:
		return {
			"cookies": list(self.cookies.values()),
			"scripts": list(self.scripts.values()),
			"iframes": list(self.iframes.values()),
			"forms": list(self.forms.values()),
			"local_storage": list(self.storage["local"].values()),
			"session_storage": list(self.storage["session"].values()),
			"network_requests": list(self.network_requests),
			"tracking_pixels": list(self.tracking_pixels.values()),
			"technologies": list(self.technologies.values()),
			"consent_management": {
				"detected": self.consent_detected,
				"platforms": list(self.consent_platforms.values()),
				"consent_string": self.consent_string,
			},
		}


class AnalysisOrchestrator:
	def __init__(self, analysis: Analysis, session_factory=None, classifier: SignalClassifier | None = None):
		self.analysis = analysis
		self.config = AnalysisConfig.from_payload(analysis.config)
		self.classifier = classifier or SignalClassifier()
		self.session_factory = session_factory or (
			lambda config: BrowserSession(config, headless=analysis_setting("HEADLESS"))
		)
		self.session = None
		self.signals = SignalAccumulator(self.classifier)
		self.cancel_token = lifecycle.CancellationToken(self._cancel_requested)
		self.discovered = []
		self.results = None

	def _cancel_requested(self) -> bool:
		return Analysis.objects.filter(pk=self.analysis.pk, status=lifecycle.CANCELLED).exists()

	def _progress(self, phase: str, step: str, percentage: int, url: str | None = None, **extra):
		self.analysis.update_progress(phase, step, percentage, url, **extra)

	# ---- lifecycle ---------------------------------------------------------

	def claim(self):
		"""
		pending -> running, after making sure no other live run holds the domain.

		Runs that have been active longer than the stale lease are force-failed
		first; a live one raises ``AnalysisInProgress``.
		"""
		a = self.analysis
		others = (
			Analysis.objects.for_domain(a.domain_id)
			.filter(status__in=lifecycle.ACTIVE)
			.exclude(pk=a.pk)
			.filter(Q(status=lifecycle.RUNNING) | Q(created_at__lt=a.created_at))
		)
		for other in others:
			if not other.is_stale():
				raise AnalysisInProgress(a.domain_id, other.pk)
			logger.warning(f"[orchestrator] force-failing stale analysis {other.scan_id}")
			try:
				other.transition(lifecycle.FAIL, step=lifecycle.STALE_STEP)
			except InvalidTransition:
				pass  # finished on its own meanwhile
		a.transition(lifecycle.START, phase="initialization", step="Starting analysis")

	def run(self) -> str:
		"""Run the whole pipeline; returns the terminal status."""
		a = self.analysis
		try:
			self.claim()
		except InvalidTransition:
			logger.info(f"[orchestrator] {a.scan_id} is {a.status}, not starting")
			return a.status

		started = time.time()
		logger.info(f"[orchestrator] {a.scan_id} started for {a.hostname}")
		try:
			self._initialize()
			self._discover()
			if self.cancel_token.check(force=True):
				return self._cancelled()
			self._analyze()
			if self.cancel_token.check(force=True):
				return self._cancelled()
			self._process(started)
			return self._finalize()
		except InvalidTransition as e:
			# lost a race against a user cancel
			logger.info(f"[orchestrator] {a.scan_id}: {e}")
			a.refresh_from_db(fields=["status"])
			return a.status
		except Exception as e:
			self._fail(e)
			raise AnalysisFailed(a.pk, str(e)) from e
		finally:
			if self.session is not None:
				self.session.close()
			logger.info(f"[orchestrator] {a.scan_id} finished in {time.time() - started:.1f}s")

	def _fail(self, err: Exception):
		a = self.analysis
		message = str(err) or err.__class__.__name__
		logger.exception(f"[orchestrator] {a.scan_id} failed: {message}")
		a.add_error(a.current_url or a.hostname, message)
		try:
			a.transition(lifecycle.FAIL, step=f"Error: {message}"[:500])
		except InvalidTransition:
			pass  # cancelled meanwhile; keep the user's decision

	def _cancelled(self) -> str:
		a = self.analysis
		a.refresh_from_db(fields=["status"])
		logger.info(f"[orchestrator] {a.scan_id} cancelled after {a.urls_analyzed} pages")
		return a.status

	# ---- phases ------------------------------------------------------------

	def _initialize(self):
		self._progress("initialization", "Initializing browser", 5)
		self.session = self.session_factory(self.config)
		self._progress("initialization", "Browser ready", 10)

	def _discover(self):
		lo, hi = lifecycle.PHASE_WINDOWS["discovery"]
		self._progress("discovery", "Discovering URLs", lo)
		budget = self.config.max_urls

		def on_progress(found, count):
			pct = lo + int(min(count / budget, 1) * (hi - lo - 1))
			self._progress("discovery", f"Discovered {count} URLs", pct, found.url, urls_discovered=count)

		self.discovered = discover(
			self.session, self.analysis.hostname, self.config, self.cancel_token, on_progress
		)
		total = len(self.discovered)
		self.analysis.save_signals(
			discovered_urls=[d.to_dict() for d in self.discovered],
			urls_discovered=total,
			urls_total=total,
		)
		self._progress("discovery", f"Discovered {total} URLs", hi)

	def _analyze(self):
		total = len(self.discovered)
		pause_ms = analysis_setting("PAUSE_MS_BETWEEN_PAGES")
		for index, item in enumerate(self.discovered, start=1):
			if self.cancel_token.check(force=True):
				break
			self._analyze_page(item.url)
			if self.cancel_token.cancelled:
				break
			item.analyzed = True
			self.analysis.save_signals(
				urls_analyzed=index,
				discovered_urls=[d.to_dict() for d in self.discovered],
				**self.signals.to_fields(),
			)
			self._progress(
				"analysis",
				f"Analyzed page {index}/{total}",
				lifecycle.analysis_percentage(index, total),
				item.url,
			)
			if pause_ms and index < total:
				time.sleep(pause_ms / 1000)

	def _analyze_page(self, url: str):
		a = self.analysis
		page = self.session.new_page()
		try:
			if self.cancel_token.check(force=True):
				return
			recorder = RequestRecorder(url).attach(page)
			status = page.navigate(url, self.config.timeout_ms, self.cancel_token)
			if status is None:
				return
			page.settle(analysis_setting("SETTLE_MS"))
			signals = extract(page, url, self.classifier.taxonomy, recorder)
		except NavigationError as e:
			logger.warning(f"[orchestrator] {url}: {e}")
			a.add_error(url, e)
			return
		except PlaywrightError as e:
			logger.warning(f"[orchestrator] {url}: page error {e}")
			a.add_error(url, e)
			return
		finally:
			page.close()

		for message in signals.errors:
			a.add_error(url, message)
		self.signals.add_page(signals)

	def _process(self, started: float):
		a = self.analysis
		lo, hi = lifecycle.PHASE_WINDOWS["processing"]
		self._progress("processing", "Computing statistics", lo)

		fields = self.signals.to_fields()
		cookies = fields["cookies"]
		consent = self.signals.consent_detected

		a.refresh_from_db(fields=["errors", "urls_analyzed"])
		statistics = risk.calculate_statistics(
			cookies,
			fields["scripts"],
			fields["network_requests"],
			error_count=len(a.errors),
			urls_analyzed=a.urls_analyzed,
			scan_seconds=time.time() - started,
		)
		statistics["risk_assessment"] = risk.assess_risk(cookies, consent)

		self._progress("processing", "Comparing with previous analysis", lo + 5)
		previous = Analysis.objects.last_completed(a.domain_id, exclude=a.pk)
		baseline = None
		if previous is not None:
			baseline = {
				"cookies": previous.cookies,
				"scripts": previous.scripts,
				"technologies": previous.technologies,
			}
		changes = detect_changes(fields, baseline)

		self._progress("processing", "Generating recommendations", hi - 1)
		self.results = {
			"statistics": statistics,
			"changes": changes,
			"recommendations": risk.generate_recommendations(cookies, consent),
		}

	def _finalize(self) -> str:
		a = self.analysis
		self._progress("finalization", "Saving results", lifecycle.PHASE_WINDOWS["finalization"][0])
		a.transition(
			lifecycle.COMPLETE,
			phase="finalization",
			step="Analysis completed",
			current_url="",
			**self.results,
		)
		Domain.objects.filter(pk=a.domain_id).update(last_analysis_at=a.finished_at)
		stats = self.results["statistics"]
		logger.info(
			f"[orchestrator] {a.scan_id} completed: {stats['total_cookies']} cookies, "
			f"risk {stats['risk_assessment']['compliance_risk']} compliance"
		)
		return a.status
