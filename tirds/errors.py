"""
Error taxonomy.

Every error carries a stable ``tag`` used by the CLI exit codes and the
HTTP error bodies. Specialist-level errors never escape the specialist
layer; they are turned into SpecialistFailure values.
"""
from typing import Any, Dict, List, Optional

from .schemas import FailureReason, SpecialistFailure


class TirdsError(Exception):
    tag = "tirds_error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.tag, "message": self.message}


class MalformedConfiguration(TirdsError):
    tag = "malformed_configuration"


class InvalidProposal(TirdsError):
    tag = "invalid_proposal"


class CacheUnavailable(TirdsError):
    """The durable store could not be read (missing, locked, corrupt)."""
    tag = "cache_unavailable"


class ExtractionError(TirdsError):
    """No structured document could be pulled out of model output."""
    tag = "unparseable_output"


class SpecialistFailed(TirdsError):
    tag = "specialist_failed"

    def __init__(self, reason: FailureReason, message: str = ""):
        super().__init__(message or reason.value)
        self.reason = reason

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["reason"] = self.reason.value
        return d


class EvaluationError(TirdsError):
    """Fatal evaluation failure. No partial decision is produced."""
    tag = "evaluation_error"


class EvaluationAborted(EvaluationError):
    tag = "evaluation_aborted"

    def __init__(self, message: str = "", cause: Optional[CacheUnavailable] = None):
        super().__init__(message)
        self.cause = cause


class AllSpecialistsFailed(EvaluationError):
    tag = "all_specialists_failed"

    def __init__(self, failures: List[SpecialistFailure]):
        summary = ", ".join(f"{f.domain.value}={f.reason.value}" for f in failures)
        super().__init__(f"no specialist succeeded ({summary or 'none enabled'})")
        self.failures = failures

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["failures"] = [f.model_dump(mode="json") for f in self.failures]
        return d


class SynthesisFailed(EvaluationError):
    tag = "synthesis_failed"

    def __init__(self, reason: str, message: str = ""):
        super().__init__(message or reason)
        self.reason = reason

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["reason"] = self.reason
        return d


EXIT_CODES = {
    MalformedConfiguration.tag: 2,
    InvalidProposal.tag: 3,
    EvaluationAborted.tag: 4,
    AllSpecialistsFailed.tag: 5,
    SynthesisFailed.tag: 6,
}


def exit_code_for(err: TirdsError) -> int:
    return EXIT_CODES.get(err.tag, 1)
