"""
Orchestrator - evaluates one TradeProposal end to end.

Per evaluation:
  snapshot_building -> fanning_out -> collecting -> renormalizing -> synthesizing -> done
Any fatal error moves the run to ``failed`` and raises a tagged
EvaluationError. Specialist failures are not fatal unless every specialist
fails.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from ..cache.reader import CacheReader
from ..config import TirdsSettings
from ..errors import AllSpecialistsFailed, CacheUnavailable, EvaluationAborted
from ..schemas import (
    FailureReason,
    SpecialistDomain,
    SpecialistFailure,
    SpecialistOutcome,
    SpecialistReport,
    SpecialistRequest,
    TradeDecision,
    TradeProposal,
    WeightedReport,
)
from .specialist import Specialist, build_specialists
from .synthesizer import Synthesizer

logger = logging.getLogger("tirds.agents.orchestrator")


class EvaluationState(str, Enum):
    IDLE = "idle"
    SNAPSHOT_BUILDING = "snapshot_building"
    FANNING_OUT = "fanning_out"
    COLLECTING = "collecting"
    RENORMALIZING = "renormalizing"
    SYNTHESIZING = "synthesizing"
    DONE = "done"
    FAILED = "failed"


_TERMINAL = (EvaluationState.DONE, EvaluationState.FAILED)


@dataclass
class EvaluationRun:
    """State of a single evaluation. Never shared between evaluations."""
    state: EvaluationState = EvaluationState.IDLE
    history: List[EvaluationState] = field(default_factory=lambda: [EvaluationState.IDLE])
    started_at: float = field(default_factory=time.monotonic)
    outcomes: List[SpecialistOutcome] = field(default_factory=list)
    error: Optional[str] = None

    def advance(self, state: EvaluationState) -> None:
        if self.state in _TERMINAL:
            raise RuntimeError(f"evaluation already {self.state.value}")
        logger.debug(f"Evaluation {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def fail(self, error: str) -> None:
        self.error = error
        if self.state not in _TERMINAL:
            self.advance(EvaluationState.FAILED)

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started_at) * 1000)


def renormalize_weights(
    reports: Sequence[SpecialistReport], weights: Dict[SpecialistDomain, float]
) -> List[WeightedReport]:
    """
    Rescale configured weights over the surviving reports so they sum to 1.

    effective_i = w_i / sum(w_j for j in survivors). If every survivor has a
    zero weight, each gets an equal share.
    """
    if not reports:
        return []
    total = sum(weights.get(r.domain, 0.0) for r in reports)
    weighted = []
    for r in reports:
        configured = weights.get(r.domain, 0.0)
        effective = configured / total if total > 0 else 1.0 / len(reports)
        weighted.append(
            WeightedReport(report=r, configured_weight=configured, effective_weight=effective)
        )
    return weighted


class Orchestrator:
    """
    Coordinates cache, specialists and synthesizer for each evaluation.

    Holds only configuration and collaborators; every evaluation gets its
    own EvaluationRun, so concurrent evaluations do not interfere.
    """

    def __init__(
        self,
        settings: TirdsSettings,
        cache: CacheReader,
        specialists: Optional[List[Specialist]] = None,
        synthesizer: Optional[Synthesizer] = None,
    ):
        self.settings = settings
        self.cache = cache
        self.specialists = specialists if specialists is not None else build_specialists(settings.agents)
        self.synthesizer = synthesizer or Synthesizer(settings.agents)

        enabled = [s.domain.value for s in self.specialists if s.config.enabled]
        logger.info(f"Orchestrator initialized - specialists: {', '.join(enabled) or 'none'}")

    async def evaluate(
        self, proposal: TradeProposal, run: Optional[EvaluationRun] = None
    ) -> TradeDecision:
        """
        Evaluate one proposal.

        Raises:
            EvaluationAborted: the cache could not be read.
            AllSpecialistsFailed: no specialist produced a report.
            SynthesisFailed: the synthesis call failed or its output was invalid.
        """
        run = run or EvaluationRun()
        logger.info(f"=== EVALUATION START {proposal.id} ({proposal.symbol}) ===")

        try:
            run.advance(EvaluationState.SNAPSHOT_BUILDING)
            logger.info("[1/4] Building domain snapshot...")
            try:
                snapshot = await self.cache.build_domain_snapshot(proposal.symbol)
            except CacheUnavailable as e:
                raise EvaluationAborted(f"cache unavailable: {e.message}", cause=e) from e

            run.advance(EvaluationState.FANNING_OUT)
            active = [s for s in self.specialists if s.config.enabled]
            logger.info(f"[2/4] Fanning out to {len(active)} specialists...")
            tasks = []
            for specialist in active:
                request = SpecialistRequest(
                    domain=specialist.domain,
                    snapshot=snapshot,
                    proposal=proposal,
                    model=self.settings.agents.model_for(specialist.config),
                    weight=specialist.config.weight,
                )
                timeout = self.settings.agents.timeout_for(specialist.config)
                tasks.append(self._run_specialist(specialist, request, timeout))

            run.advance(EvaluationState.COLLECTING)
            outcomes: List[SpecialistOutcome] = list(await asyncio.gather(*tasks))
            run.outcomes = outcomes

            run.advance(EvaluationState.RENORMALIZING)
            reports, failures = _partition(outcomes)
            if not reports:
                raise AllSpecialistsFailed(failures)
            weights = {s.domain: s.config.weight for s in active}
            weighted = renormalize_weights(reports, weights)
            logger.info(
                "[3/4] Renormalized weights: "
                + ", ".join(f"{w.report.domain.value}={w.effective_weight:.4f}" for w in weighted)
            )

            run.advance(EvaluationState.SYNTHESIZING)
            logger.info("[4/4] Synthesizing decision...")
            decision = await self.synthesizer.synthesize(snapshot, proposal, weighted, failures)
        except Exception as e:
            run.fail(str(e))
            logger.error(f"=== EVALUATION FAILED {proposal.id} after {run.elapsed_ms}ms: {e} ===")
            raise

        decision = decision.model_copy(update={"processing_time_ms": run.elapsed_ms})
        run.advance(EvaluationState.DONE)
        logger.info(
            f"=== EVALUATION DONE {proposal.id}: {decision.recommendation.value} "
            f"confidence={decision.overall_confidence.score:.2f} in {decision.processing_time_ms}ms ==="
        )
        return decision

    async def _run_specialist(
        self, specialist: Specialist, request: SpecialistRequest, timeout: float
    ) -> SpecialistOutcome:
        start = time.monotonic()
        try:
            return await asyncio.wait_for(specialist.evaluate(request, timeout), timeout=timeout)
        except asyncio.TimeoutError:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            logger.warning(f"{specialist.name} timed out after {elapsed_ms}ms")
            return SpecialistFailure(
                domain=specialist.domain,
                reason=FailureReason.TIMEOUT,
                message=f"no response within {timeout:g}s",
                elapsed_ms=elapsed_ms,
            )
        except Exception as e:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            logger.exception(f"{specialist.name} crashed: {e}")
            return SpecialistFailure(
                domain=specialist.domain,
                reason=FailureReason.PROCESS_ERROR,
                message=str(e),
                elapsed_ms=elapsed_ms,
            )


def _partition(
    outcomes: Sequence[SpecialistOutcome],
) -> Tuple[List[SpecialistReport], List[SpecialistFailure]]:
    reports = [o for o in outcomes if isinstance(o, SpecialistReport)]
    failures = [o for o in outcomes if isinstance(o, SpecialistFailure)]
    return reports, failures
