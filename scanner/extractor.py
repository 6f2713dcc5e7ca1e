# scanner/extractor.py
"""
Per-page extraction of raw privacy signals from a loaded ``PageHandle``.

Each sub-extractor is independent: when one fails (storage access denied,
page navigated away, script error) it is logged, recorded on
``RawSignals.errors`` and the others still run. Nothing here mutates the
page.
"""
import json
import logging
import time

from playwright.sync_api import Error as PlaywrightError

from scanner.signals import (
    RawConsentHint,
    RawCookie,
    RawForm,
    RawIframe,
    RawRequest,
    RawScript,
    RawSignals,
    RawStorageEntry,
    RawTechnologyHint,
)
from scanner.taxonomy import get_taxonomy

logger = logging.getLogger("scanner")

STORAGE_JS = """() => {
    const dump = (store) => {
        const out = [];
        try {
            for (let i = 0; i < store.length; i++) {
                const key = store.key(i);
                out.push({key: key, value: store.getItem(key)});
            }
        } catch (e) {}
        return out;
    };
    return {local: dump(window.localStorage), session: dump(window.sessionStorage)};
}"""

SCRIPTS_JS = """() => Array.from(document.querySelectorAll('script')).map(s => ({
    src: s.src || null,
    content: s.src ? null : (s.textContent || '').substring(0, 1000),
    type: s.type || 'text/javascript',
    async: s.async,
    defer: s.defer,
}))"""

IFRAMES_JS = """() => Array.from(document.querySelectorAll('iframe')).map(f => ({
    src: f.src,
    sandbox: f.sandbox ? Array.from(f.sandbox) : [],
    width: f.width,
    height: f.height,
}))"""

FORMS_JS = """() => Array.from(document.querySelectorAll('form')).map(form => ({
    action: form.action,
    method: form.method,
    fields: Array.from(form.querySelectorAll('input, select, textarea')).map(el => ({
        name: el.name,
        type: el.type,
        required: el.required,
        placeholder: el.placeholder || '',
    })),
}))"""

TCF_JS = """() => new Promise((resolve) => {
    if (typeof window.__tcfapi !== 'function') { resolve(null); return; }
    try {
        window.__tcfapi('getTCData', 2, (tcData, success) => {
            if (!success || !tcData) { resolve(null); return; }
            resolve({
                tcf_policy_version: tcData.tcfPolicyVersion,
                gdpr_applies: tcData.gdprApplies,
                cmp_id: tcData.cmpId,
                cmp_version: tcData.cmpVersion,
                consent_string: tcData.tcString,
            });
        });
        setTimeout(() => resolve(null), 1000);
    } catch (e) { resolve(null); }
})"""


def consent_script(taxonomy) -> str:
    """JS returning ``[[name, source], ...]`` for every CMP marker on the page."""
    globals_ = json.dumps(list(taxonomy.consent_globals))
    selectors = json.dumps([list(pair) for pair in taxonomy.consent_selectors])
    return (
        "() => {\n"
        "    const found = [];\n"
        f"    {globals_}.forEach(g => {{ if (window[g]) found.push([g, 'global']); }});\n"
        f"    {selectors}.forEach(([sel, name]) => {{\n"
        "        if (document.querySelector(sel)) found.push([name, 'selector']);\n"
        "    });\n"
        "    return found;\n"
        "}"
    )


def technology_script(taxonomy) -> str:
    """JS returning ``[[name, category], ...]`` for every probe that fires."""
    checks = "\n".join(
        f"    try {{ if ({probe.expression}) found.push({json.dumps([probe.name, probe.category])}); }} catch (e) {{}}"
        for probe in taxonomy.technologies
    )
    return "() => {\n    const found = [];\n" + checks + "\n    return found;\n}"


class RequestRecorder:
    """
    Captures every network request a page makes, attributed to ``page_url``.

    Must be attached before navigation. Response status and size are filled
    in as responses arrive; ``finished_at`` once the request completes.
    """

    def __init__(self, page_url: str):
        self.page_url = page_url
        self.requests = []
        self._pending = {}

    def attach(self, page):
        page.on_request(self._on_request)
        page.on_response(self._on_response)
        page.on_request_finished(self._on_finished)
        return self

    def _on_request(self, request):
        frame = None
        try:
            frame = request.frame.url
        except PlaywrightError:
            # detached frames and service workers have no frame
            frame = None
        raw = RawRequest(
            url=request.url,
            method=request.method,
            resource_type=request.resource_type,
            initiator=frame or "unknown",
            page_url=self.page_url,
            started_at=time.time(),
        )
        self._pending[id(request)] = raw
        self.requests.append(raw)

    def _on_response(self, response):
        raw = self._pending.get(id(response.request))
        if raw is None:
            return
        raw.status = response.status
        length = response.headers.get("content-length")
        if length and length.isdigit():
            raw.size = int(length)

    def _on_finished(self, request):
        raw = self._pending.pop(id(request), None)
        if raw is not None:
            raw.finished_at = time.time()


def _run(signals: RawSignals, name: str, fn):
    try:
        return fn()
    except Exception as e:
        logger.warning(f"[extract] {name} failed on {signals.url}: {e}")
        signals.errors.append(f"{name}: {e}")
        return None


def extract(page, url: str, taxonomy=None, recorder: RequestRecorder | None = None) -> RawSignals:
    """Run every sub-extractor against an already loaded page."""
    taxonomy = taxonomy or get_taxonomy()
    signals = RawSignals(url=url)

    cookies = _run(signals, "cookies", page.cookies) or []
    signals.cookies = [RawCookie.from_browser(c) for c in cookies if isinstance(c, dict) and c.get("name")]

    storage = _run(signals, "storage", lambda: page.evaluate(STORAGE_JS)) or {}
    for area in ("local", "session"):
        for item in storage.get(area) or []:
            if isinstance(item, dict) and item.get("key") is not None:
                signals.storage.append(RawStorageEntry.from_browser(area, item))

    scripts = _run(signals, "scripts", lambda: page.evaluate(SCRIPTS_JS)) or []
    signals.scripts = [RawScript.from_browser(s) for s in scripts if isinstance(s, dict)]

    iframes = _run(signals, "iframes", lambda: page.evaluate(IFRAMES_JS)) or []
    signals.iframes = [RawIframe.from_browser(f) for f in iframes if isinstance(f, dict) and f.get("src")]

    forms = _run(signals, "forms", lambda: page.evaluate(FORMS_JS)) or []
    signals.forms = [RawForm.from_browser(f) for f in forms if isinstance(f, dict)]

    hints = _run(signals, "consent", lambda: page.evaluate(consent_script(taxonomy))) or []
    signals.consent_hints = [RawConsentHint(name=str(n), source=str(s)) for n, s in hints]
    if any(h.name == "__tcfapi" for h in signals.consent_hints):
        signals.tcf = _run(signals, "tcf", lambda: page.evaluate(TCF_JS))

    techs = _run(signals, "technologies", lambda: page.evaluate(technology_script(taxonomy))) or []
    signals.technologies = [RawTechnologyHint(name=str(n), category=str(c)) for n, c in techs]

    if recorder is not None:
        signals.requests = list(recorder.requests)

    logger.debug(
        f"[extract] {url}: {len(signals.cookies)} cookies, {len(signals.scripts)} scripts, "
        f"{len(signals.requests)} requests, {len(signals.errors)} extractor errors"
    )
    return signals
