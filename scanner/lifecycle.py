# scanner/lifecycle.py
"""
Analysis status state machine and progress phases.

    pending --start--> running --complete--> completed
       |                  |------fail------> failed
       |                  '-----cancel-----> cancelled
       |------cancel----> cancelled
       '------fail------> failed   (stale lease only)

completed, failed and cancelled are terminal: no event leaves them.
"""
import time

from scanner.exceptions import InvalidTransition

PENDING = "pending"
RUNNING = "running"
COMPLETED = "completed"
FAILED = "failed"
CANCELLED = "cancelled"

ACTIVE = (PENDING, RUNNING)
TERMINAL = (COMPLETED, FAILED, CANCELLED)

START = "start"
COMPLETE = "complete"
FAIL = "fail"
CANCEL = "cancel"

TRANSITIONS = {
	(PENDING, START): RUNNING,
	(PENDING, CANCEL): CANCELLED,
	(PENDING, FAIL): FAILED,
	(RUNNING, COMPLETE): COMPLETED,
	(RUNNING, FAIL): FAILED,
	(RUNNING, CANCEL): CANCELLED,
}

# (phase, start %, end %)
PHASES = (
	("initialization", 0, 10),
	("discovery", 10, 20),
	("analysis", 20, 80),
	("processing", 80, 95),
	("finalization", 95, 100),
)
PHASE_WINDOWS = {name: (lo, hi) for name, lo, hi in PHASES}

STALE_STEP = "Timeout: analysis automatically failed after the lease expired"


def next_status(current: str, event: str) -> str:
	try:
		return TRANSITIONS[(current, event)]
	except KeyError:
		raise InvalidTransition(current, event) from None


def sources_for(event: str) -> tuple:
	"""Statuses from which ``event`` is allowed."""
	return tuple(src for (src, ev) in TRANSITIONS if ev == event)


def is_terminal(status: str) -> bool:
	return status in TERMINAL


def analysis_percentage(analyzed: int, total: int) -> int:
	lo, hi = PHASE_WINDOWS["analysis"]
	if total <= 0:
		return hi
	return lo + int((min(analyzed, total) / total) * (hi - lo))


class CancellationToken:
	"""
	Cooperative cancellation flag.

	The ``check`` argument is a callable returning True once the run must stop
	(for an orchestrated run it reads the record's status). ``cancelled``
	caches the answer for ``interval`` seconds for tight polling loops;
	``check(force=True)`` always asks. Once cancelled the token stays
	cancelled.
	"""

	def __init__(self, check=None, interval: float = 1.0):
		self._check = check
		self._interval = interval
		self._last = None
		self._cancelled = False

	def cancel(self):
		self._cancelled = True

	@property
	def cancelled(self) -> bool:
		return self.check()

	def check(self, force: bool = False) -> bool:
		"""Read the flag; ``force`` skips the cache and asks ``check`` now."""
		if self._cancelled or self._check is None:
			return self._cancelled
		now = time.monotonic()
		if force or self._last is None or now - self._last >= self._interval:
			self._last = now
			self._cancelled = bool(self._check())
		return self._cancelled
