# scanner/exceptions.py


class AnalysisError(Exception):
	"""Base class for every error raised by the analysis pipeline."""


class AnalysisNotFound(AnalysisError):
	pass


class AnalysisInProgress(AnalysisError):
	"""Another non-stale analysis is pending or running for the same domain."""

	def __init__(self, domain_id, active_id=None):
		self.domain_id = domain_id
		self.active_id = active_id
		super().__init__(f"An analysis is already in progress for domain {domain_id}")


class InvalidTransition(AnalysisError):
	def __init__(self, current: str, event: str):
		self.current = current
		self.event = event
		super().__init__(f"Cannot apply '{event}' to an analysis in state '{current}'")


class AnalysisNotCompleted(AnalysisError):
	pass


class InvalidAnalysisConfig(AnalysisError):
	pass


class AnalysisFailed(AnalysisError):
	"""A run-fatal error; the record has already been moved to ``failed``."""

	def __init__(self, analysis_id, message: str):
		self.analysis_id = analysis_id
		super().__init__(message)
