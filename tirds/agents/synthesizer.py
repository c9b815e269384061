"""
Synthesizer - folds weighted specialist reports into one TradeDecision.

Exactly one inference call per evaluation. The model's output is checked
before it becomes a decision:
- confidences must lie in [0, 1]; values within rounding distance of a
  bound are clamped, anything else fails the synthesis
- decay projection offsets must be non-negative and non-decreasing
- a confidence that rises over time while no new information is expected
  becomes a warning on the decision
Contributions are always built from the surviving reports, never from the
model's answer.
"""
import json
import logging
import math
from typing import Awaitable, Callable, List, Optional, Sequence

from pydantic import AliasChoices, BaseModel, Field

from ..config import AgentsConfig
from ..errors import ExtractionError, SpecialistFailed, SynthesisFailed
from ..schemas import (
    ConfidenceScore,
    DecayProfile,
    DomainSnapshot,
    InformationRelevance,
    LegAssessment,
    PriceAssessment,
    Recommendation,
    SpecialistContribution,
    SpecialistFailure,
    TimelinePoint,
    TradeDecision,
    TradeIntelligence,
    TradeProposal,
    WeightedReport,
)
from .claude_cli import invoke_claude
from .parser import extract_structured
from .prompts import SYNTHESIZER_SYSTEM_PROMPT

logger = logging.getLogger("tirds.agents.synthesizer")

CLAMP_EPSILON = 1e-9


class SynthesisOutput(BaseModel):
    """Shape the synthesizer model is asked to produce. Ranges are checked separately."""
    recommendation: Optional[Recommendation] = None
    overall_confidence: ConfidenceScore
    leg_assessments: List[LegAssessment] = Field(default_factory=list)
    price_assessment: Optional[PriceAssessment] = None
    information_relevance: InformationRelevance = Field(
        default_factory=lambda: InformationRelevance(score=0.0)
    )
    confidence_decay: DecayProfile
    price_target_decay: Optional[DecayProfile] = None
    trade_intelligence: TradeIntelligence = Field(
        default_factory=lambda: TradeIntelligence(smartness_score=0.0)
    )
    decay_projection: List[TimelinePoint] = Field(
        default_factory=list,
        validation_alias=AliasChoices("decay_projection", "timeline"),
    )
    new_information_expected: bool = False
    reasoning: str = ""


def clamp_unit(value: float, label: str, reason: str) -> float:
    """Accept [0, 1], clamp rounding noise at the bounds, reject the rest."""
    if math.isfinite(value):
        if 0.0 <= value <= 1.0:
            return value
        if -CLAMP_EPSILON <= value < 0.0:
            logger.info(f"Clamped {label} {value!r} to 0.0")
            return 0.0
        if 1.0 < value <= 1.0 + CLAMP_EPSILON:
            logger.info(f"Clamped {label} {value!r} to 1.0")
            return 1.0
    logger.warning(f"Synthesizer returned {label}={value!r}, outside [0, 1]")
    raise SynthesisFailed(reason, f"{label} {value!r} outside [0, 1]")


def check_projection(points: Sequence[TimelinePoint], new_information_expected: bool) -> tuple[List[TimelinePoint], List[str]]:
    """Validate the decay projection; returns the cleaned points and any warnings."""
    cleaned: List[TimelinePoint] = []
    warnings: List[str] = []
    prev: Optional[TimelinePoint] = None
    for i, point in enumerate(points):
        if not math.isfinite(point.offset_hours) or point.offset_hours < 0:
            raise SynthesisFailed(
                "decay_offsets_invalid", f"negative offset {point.offset_hours!r} at point {i}"
            )
        if prev is not None and point.offset_hours < prev.offset_hours:
            raise SynthesisFailed(
                "decay_offsets_invalid",
                f"offset {point.offset_hours:g}h follows {prev.offset_hours:g}h",
            )
        conf = clamp_unit(
            point.projected_confidence, f"decay_projection[{i}].projected_confidence",
            "projection_out_of_range",
        )
        point = point.model_copy(update={"projected_confidence": conf})
        if prev is not None and not new_information_expected and conf > prev.projected_confidence + CLAMP_EPSILON:
            warnings.append(
                f"Projected confidence rises from {prev.projected_confidence:.2f} at "
                f"{prev.offset_hours:g}h to {conf:.2f} at {point.offset_hours:g}h "
                f"with no new information expected"
            )
        cleaned.append(point)
        prev = point
    return cleaned, warnings


def recommendation_for(score: float) -> Recommendation:
    if score >= 0.70:
        return Recommendation.PROCEED
    if score >= 0.55:
        return Recommendation.PROCEED_WITH_CAUTION
    if score >= 0.40:
        return Recommendation.WAIT
    return Recommendation.REJECT


class Synthesizer:
    """Runs the synthesis call and turns its output into a TradeDecision."""

    def __init__(self, agents: AgentsConfig, invoke: Callable[..., Awaitable[str]] = invoke_claude):
        self.model = agents.synthesizer_model
        self.timeout = agents.synthesizer_timeout_seconds
        self.command = agents.cli_command
        self._invoke = invoke

    def build_prompt(
        self,
        snapshot: DomainSnapshot,
        proposal: TradeProposal,
        weighted: Sequence[WeightedReport],
        failures: Sequence[SpecialistFailure],
    ) -> str:
        return json.dumps(
            {
                "proposal": proposal.model_dump(mode="json"),
                "snapshot": {
                    "symbol": snapshot.symbol,
                    "built_at": snapshot.built_at.isoformat(),
                    "quote": snapshot.quote,
                    "sources": snapshot.sources,
                },
                "specialist_reports": [
                    {
                        "domain": w.report.domain.value,
                        "effective_weight": round(w.effective_weight, 6),
                        "direction": w.report.direction.value,
                        "confidence": w.report.confidence,
                        "reasoning": w.report.reasoning,
                        "warnings": w.report.warnings,
                        "analysis": w.report.analysis,
                    }
                    for w in weighted
                ],
                "failed_specialists": [
                    {"domain": f.domain.value, "reason": f.reason.value} for f in failures
                ],
            },
            indent=2,
            default=str,
        )

    async def synthesize(
        self,
        snapshot: DomainSnapshot,
        proposal: TradeProposal,
        weighted: Sequence[WeightedReport],
        failures: Sequence[SpecialistFailure] = (),
    ) -> TradeDecision:
        """
        Raises:
            SynthesisFailed: inference failed or the output did not validate.
        """
        prompt = self.build_prompt(snapshot, proposal, weighted, failures)
        try:
            raw = await self._invoke(
                SYNTHESIZER_SYSTEM_PROMPT, prompt, self.model, self.timeout, command=self.command
            )
            output = extract_structured(raw, SynthesisOutput)
        except SpecialistFailed as e:
            logger.error(f"Synthesis call failed ({e.reason.value}): {e.message}")
            raise SynthesisFailed(e.reason.value, e.message) from e
        except ExtractionError as e:
            logger.error(f"Synthesis output unusable: {e.message}")
            raise SynthesisFailed("unparseable_output", e.message) from e

        return self.build_decision(output, proposal, weighted, failures)

    def build_decision(
        self,
        output: SynthesisOutput,
        proposal: TradeProposal,
        weighted: Sequence[WeightedReport],
        failures: Sequence[SpecialistFailure],
    ) -> TradeDecision:
        score = clamp_unit(output.overall_confidence.score, "overall_confidence", "confidence_out_of_range")
        legs = [
            leg.model_copy(update={
                "confidence": leg.confidence.model_copy(update={
                    "score": clamp_unit(leg.confidence.score, f"leg_assessments[{i}].confidence", "confidence_out_of_range"),
                }),
            })
            for i, leg in enumerate(output.leg_assessments)
        ]
        projection, warnings = check_projection(output.decay_projection, output.new_information_expected)

        for w in weighted:
            warnings.extend(f"[{w.report.domain.value}] {msg}" for msg in w.report.warnings)
        for f in failures:
            warnings.append(f"{f.domain.value} specialist unavailable ({f.reason.value})")

        contributions = [
            SpecialistContribution(
                domain=w.report.domain,
                agent_name=w.report.agent_name,
                direction=w.report.direction,
                confidence=w.report.confidence,
                configured_weight=w.configured_weight,
                effective_weight=w.effective_weight,
                reasoning=w.report.reasoning,
                warnings=w.report.warnings,
                elapsed_ms=w.report.elapsed_ms,
            )
            for w in weighted
        ]

        return TradeDecision(
            proposal_id=proposal.id,
            symbol=proposal.symbol,
            recommendation=output.recommendation or recommendation_for(score),
            overall_confidence=ConfidenceScore(score=score, reasoning=output.overall_confidence.reasoning),
            leg_assessments=legs,
            price_assessment=output.price_assessment,
            confidence_decay=output.confidence_decay,
            price_target_decay=output.price_target_decay,
            decay_projection=projection,
            information_relevance=output.information_relevance,
            trade_intelligence=output.trade_intelligence,
            contributions=contributions,
            failed_specialists=list(failures),
            warnings=warnings,
            reasoning=output.reasoning or output.overall_confidence.reasoning,
        )
