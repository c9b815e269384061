"""
Domain specialists.

A specialist turns a DomainSnapshot and a TradeProposal into a
SpecialistReport through one inference call. ``evaluate`` never raises for
timeouts, process errors or unparseable output; those come back as a
SpecialistFailure value so the orchestrator can keep going without them.
"""
import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from ..config import AgentsConfig, SpecialistConfig
from ..errors import ExtractionError, SpecialistFailed
from ..schemas import (
    DirectionLean,
    DomainSnapshot,
    FailureReason,
    SpecialistDomain,
    SpecialistFailure,
    SpecialistOutcome,
    SpecialistReport,
    SpecialistRequest,
)
from .claude_cli import invoke_claude
from .parser import extract_structured
from .prompts import get_specialist_prompt

logger = logging.getLogger("tirds.agents.specialist")

Invoker = Callable[..., Awaitable[str]]


class RawSpecialistOutput(BaseModel):
    """What the model is asked to return; identity fields are filled in locally."""
    direction: DirectionLean
    confidence: float = Field(ge=0.0, le=1.0, strict=True)
    reasoning: str
    warnings: List[str] = Field(default_factory=list)
    analysis: Dict[str, Any] = Field(default_factory=dict)
    data_sources_consulted: List[str] = Field(default_factory=list)


class Specialist(ABC):
    """Base class for the four domain specialists."""

    domain: SpecialistDomain

    def __init__(
        self,
        config: SpecialistConfig,
        command: Optional[Sequence[str]] = None,
        invoke: Invoker = invoke_claude,
    ):
        if config.domain != self.domain:
            raise ValueError(f"{type(self).__name__} cannot run {config.domain.value} config")
        self.config = config
        self.command = command
        self._invoke = invoke

    @property
    def name(self) -> str:
        return self.config.agent_name

    @property
    def system_prompt(self) -> str:
        return get_specialist_prompt(self.domain)

    @abstractmethod
    def select_data(self, snapshot: DomainSnapshot) -> Dict[str, Any]:
        """The part of the snapshot this domain reasons about."""

    def build_prompt(self, request: SpecialistRequest) -> str:
        snapshot = self.select_data(request.snapshot)
        snapshot["sources"] = [
            key for key in request.snapshot.sources if self._uses_key(key)
        ]
        return json.dumps(
            {
                "request_id": str(request.request_id),
                "proposal": request.proposal.model_dump(mode="json"),
                "snapshot": snapshot,
            },
            indent=2,
        )

    def _uses_key(self, key: str) -> bool:
        return True

    def parse_report(self, raw: str, elapsed_ms: int) -> SpecialistReport:
        out = extract_structured(raw, RawSpecialistOutput)
        warnings = list(out.warnings)
        extra = out.analysis.get("warnings")
        if isinstance(extra, list):
            warnings.extend(str(w) for w in extra if str(w) not in warnings)
        return SpecialistReport(
            domain=self.domain,
            agent_name=self.name,
            direction=out.direction,
            confidence=out.confidence,
            reasoning=out.reasoning,
            warnings=warnings,
            analysis=out.analysis,
            data_sources_consulted=out.data_sources_consulted,
            elapsed_ms=elapsed_ms,
        )

    async def evaluate(self, request: SpecialistRequest, timeout: float) -> SpecialistOutcome:
        start = time.monotonic()
        try:
            raw = await self._invoke(
                self.system_prompt,
                self.build_prompt(request),
                request.model,
                timeout,
                command=self.command,
            )
            report = self.parse_report(raw, int((time.monotonic() - start) * 1000))
        except SpecialistFailed as e:
            return self._failure(e.reason, e.message, start)
        except ExtractionError as e:
            return self._failure(FailureReason.UNPARSEABLE_OUTPUT, e.message, start)

        logger.info(
            f"{self.name}: {report.direction.value} confidence={report.confidence:.2f} "
            f"({report.elapsed_ms}ms)"
        )
        return report

    def _failure(self, reason: FailureReason, message: str, start: float) -> SpecialistFailure:
        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.warning(f"{self.name} failed ({reason.value}) after {elapsed_ms}ms: {message}")
        return SpecialistFailure(
            domain=self.domain, reason=reason, message=message, elapsed_ms=elapsed_ms
        )


class TechnicalSpecialist(Specialist):
    domain = SpecialistDomain.TECHNICAL

    def select_data(self, snapshot: DomainSnapshot) -> Dict[str, Any]:
        return {"bars": snapshot.bars, "quote": snapshot.quote, "indicators": snapshot.indicators}

    def _uses_key(self, key: str) -> bool:
        return key.startswith(("bars:", "quote:", "indicator:"))


class MacroSpecialist(Specialist):
    domain = SpecialistDomain.MACRO

    def select_data(self, snapshot: DomainSnapshot) -> Dict[str, Any]:
        return {"reference": snapshot.reference, "quote": snapshot.quote}

    def _uses_key(self, key: str) -> bool:
        return key.startswith(("ref:", "quote:"))


class SentimentSpecialist(Specialist):
    domain = SpecialistDomain.SENTIMENT

    def select_data(self, snapshot: DomainSnapshot) -> Dict[str, Any]:
        return {"sentiment": snapshot.sentiment, "quote": snapshot.quote}

    def _uses_key(self, key: str) -> bool:
        return key.startswith(("sentiment:", "quote:"))


class SectorSpecialist(Specialist):
    domain = SpecialistDomain.SECTOR

    def select_data(self, snapshot: DomainSnapshot) -> Dict[str, Any]:
        return {
            "reference": snapshot.reference,
            "quote": snapshot.quote,
            "bars": {tf: bars for tf, bars in snapshot.bars.items() if tf == "1d"},
        }

    def _uses_key(self, key: str) -> bool:
        return key.startswith(("ref:", "quote:")) or (key.startswith("bars:") and key.endswith(":1d"))


SPECIALIST_CLASSES = {
    cls.domain: cls
    for cls in (TechnicalSpecialist, MacroSpecialist, SentimentSpecialist, SectorSpecialist)
}


def build_specialists(agents: AgentsConfig, invoke: Invoker = invoke_claude) -> List[Specialist]:
    """One specialist per configured domain, in configuration order."""
    return [
        SPECIALIST_CLASSES[entry.domain](entry, command=agents.cli_command, invoke=invoke)
        for entry in agents.specialists
    ]
