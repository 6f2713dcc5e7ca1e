# scanner/discovery.py
"""Breadth-first URL discovery for one domain."""
from collections import deque
from dataclasses import dataclass, asdict
from urllib.parse import urlparse, urljoin
import logging
import re

from playwright.sync_api import Error as PlaywrightError

from scanner.browser import NavigationError
from scanner.config import analysis_setting

logger = logging.getLogger("scanner")

SUBDOMAIN_PROBES = ("www", "api", "blog", "shop", "store", "admin", "app", "mobile", "m")

ROOT = "root"
SUBDOMAIN_DISCOVERY = "subdomain_discovery"


@dataclass
class DiscoveredUrl:
	url: str
	depth: int
	found_on: str
	analyzed: bool = False

	def to_dict(self) -> dict:
		return asdict(self)


def normalize_url(url: str) -> str | None:
	"""scheme://host/path with query and fragment dropped; None for non-http(s)."""
	try:
		parsed = urlparse(url)
	except ValueError:
		return None
	if parsed.scheme not in ("http", "https") or not parsed.hostname:
		return None
	return f"{parsed.scheme}://{parsed.hostname.lower()}{parsed.path or '/'}"


def normalize_links(hrefs: list[str], base_url: str) -> list[str]:
	out = []
	for href in hrefs or []:
		if not href or not isinstance(href, str):
			continue
		if href.startswith(("mailto:", "tel:", "javascript:", "#")):
			continue
		absu = re.sub(r"#.*$", "", urljoin(base_url, href))
		norm = normalize_url(absu)
		if norm:
			out.append(norm)
	return list(dict.fromkeys(out))


def in_scope(host: str, domain: str, include_subdomains: bool) -> bool:
	if not host:
		return False
	host = host.lower()
	domain = domain.lower()
	return host == domain or (include_subdomains and host.endswith(f".{domain}"))


def _ok(status) -> bool:
	return status is not None and 200 <= status < 400


def probe_subdomains(session, domain: str, cancel_token=None, timeout_ms: int | None = None) -> list[str]:
	"""Common subdomain labels that answer with a successful response."""
	timeout_ms = timeout_ms or analysis_setting("PROBE_TIMEOUT_MS")
	found = []
	for label in SUBDOMAIN_PROBES:
		if cancel_token is not None and cancel_token.cancelled:
			break
		host = f"{label}.{domain}"
		page = session.new_page()
		try:
			if _ok(page.navigate(f"https://{host}", timeout_ms, cancel_token)):
				found.append(host)
		except NavigationError:
			pass  # subdomain does not exist or is unreachable
		finally:
			page.close()
	if found:
		logger.info(f"[discovery] {domain}: live subdomains {found}")
	return found


def discover(session, domain: str, config, cancel_token=None, on_progress=None) -> list[DiscoveredUrl]:
	"""
	BFS from ``https://{domain}`` (plus probed subdomains when enabled).

	At most ``config.max_urls`` URLs are accepted. Links are only followed
	from pages shallower than ``config.depth``, so nothing deeper than
	``config.depth`` is ever queued. A URL already visited or pending is
	never queued again. Navigation errors are logged and skipped.
	"""
	seed = normalize_url(f"https://{domain}")
	frontier = deque([DiscoveredUrl(seed, 0, ROOT)])
	pending = {seed}

	if config.include_subdomains:
		for host in probe_subdomains(session, domain, cancel_token):
			url = normalize_url(f"https://{host}")
			if url not in pending:
				frontier.append(DiscoveredUrl(url, 0, SUBDOMAIN_DISCOVERY))
				pending.add(url)

	visited = set()
	accepted = []

	while frontier and len(accepted) < config.max_urls:
		if cancel_token is not None and cancel_token.cancelled:
			logger.info(f"[discovery] {domain}: cancelled after {len(accepted)} urls")
			break

		current = frontier.popleft()
		pending.discard(current.url)
		if current.url in visited or current.depth > config.depth:
			continue
		visited.add(current.url)
		accepted.append(current)
		if on_progress:
			on_progress(current, len(accepted))

		page = session.new_page()
		try:
			status = page.navigate(current.url, config.timeout_ms, cancel_token)
			if not _ok(status) or current.depth >= config.depth:
				continue
			for link in normalize_links(page.links(), current.url):
				if not in_scope(urlparse(link).hostname, domain, config.include_subdomains):
					continue
				if link in visited or link in pending:
					continue
				frontier.append(DiscoveredUrl(link, current.depth + 1, current.url))
				pending.add(link)
		except NavigationError as e:
			logger.warning(f"[discovery] {current.url}: {e}")
		except PlaywrightError as e:
			logger.warning(f"[discovery] link extraction failed on {current.url}: {e}")
		finally:
			page.close()

	logger.info(f"[discovery] {domain}: {len(accepted)} urls (visited {len(visited)}, queued {len(frontier)})")
	return accepted
