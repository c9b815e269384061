"""
Pydantic schemas for the trade relevance decider.

Wire conventions: decimals serialize as strings, timestamps as RFC3339.
"""
from enum import Enum
from typing import Optional, List, Dict, Any, Union
from datetime import datetime, timezone
from decimal import Decimal
from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, field_validator
import uuid


SCHEMA_VERSION = 1


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Side(str, Enum):
    BUY = "buy"
    SELL = "sell"


class CacheCategory(str, Enum):
    MARKET_DATA = "market_data"
    INDICATOR = "indicator"
    REFERENCE_SYMBOL = "reference_symbol"
    SENTIMENT = "sentiment"
    SUBSCRIPTION = "subscription"


class SpecialistDomain(str, Enum):
    TECHNICAL = "technical"
    MACRO = "macro"
    SENTIMENT = "sentiment"
    SECTOR = "sector"


class DirectionLean(str, Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class FailureReason(str, Enum):
    TIMEOUT = "timeout"
    PROCESS_ERROR = "process_error"
    UNPARSEABLE_OUTPUT = "unparseable_output"


class Recommendation(str, Enum):
    PROCEED = "proceed"
    PROCEED_WITH_CAUTION = "proceed_with_caution"
    WAIT = "wait"
    REJECT = "reject"


class DecayModel(str, Enum):
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


# ---------------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------------

class TradeLeg(BaseModel):
    """One leg of a proposed trade. A missing price means market."""
    model_config = ConfigDict(frozen=True)

    side: Side
    price: Optional[Decimal] = Field(default=None, description="Limit price, None = market")
    quantity: Optional[Decimal] = Field(default=None, description="Quantity, None = any")
    time_in_force: Optional[str] = None


class TradeContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    source_rule_id: Optional[str] = None
    current_market_price: Optional[Decimal] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class TradeProposal(BaseModel):
    """Candidate trade submitted for evaluation. Immutable once submitted."""
    model_config = ConfigDict(frozen=True)

    id: uuid.UUID
    schema_version: int
    symbol: str = Field(min_length=1)
    legs: List[TradeLeg] = Field(min_length=1)
    proposed_at: AwareDatetime
    context: Optional[TradeContext] = None

    @field_validator("schema_version")
    @classmethod
    def _supported_version(cls, v: int) -> int:
        if v != SCHEMA_VERSION:
            raise ValueError(f"unsupported schema_version {v}, expected {SCHEMA_VERSION}")
        return v

    @field_validator("symbol")
    @classmethod
    def _normalize_symbol(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("symbol must not be blank")
        return v


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------

class CacheEntry(BaseModel):
    """A cached document as written by the loader."""
    model_config = ConfigDict(frozen=True)

    key: str
    category: CacheCategory
    value: Any
    source: str
    symbol: Optional[str] = None
    created_at: datetime
    expires_at: datetime
    updated_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class DomainSnapshot(BaseModel):
    """Everything the cache currently knows about one symbol.

    Sections are keyed by discriminator (timeframe, indicator name, reference
    symbol, sentiment source). Missing entries are simply absent.
    """
    symbol: str
    built_at: datetime = Field(default_factory=utcnow)
    bars: Dict[str, Any] = Field(default_factory=dict)
    quote: Optional[Any] = None
    indicators: Dict[str, Any] = Field(default_factory=dict)
    reference: Dict[str, Any] = Field(default_factory=dict)
    sentiment: Dict[str, Any] = Field(default_factory=dict)
    sources: List[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.bars or self.quote is not None or self.indicators
                    or self.reference or self.sentiment)


# ---------------------------------------------------------------------------
# Specialists
# ---------------------------------------------------------------------------

class SpecialistRequest(BaseModel):
    request_id: uuid.UUID = Field(default_factory=uuid.uuid4)
    domain: SpecialistDomain
    snapshot: DomainSnapshot
    proposal: TradeProposal
    model: str
    weight: float


class SpecialistReport(BaseModel):
    """Validated output of one specialist."""
    domain: SpecialistDomain
    agent_name: str = ""
    direction: DirectionLean = DirectionLean.NEUTRAL
    confidence: float = Field(ge=0.0, le=1.0, description="Specialist-local confidence 0-1")
    reasoning: str = ""
    warnings: List[str] = Field(default_factory=list)
    analysis: Dict[str, Any] = Field(default_factory=dict)
    data_sources_consulted: List[str] = Field(default_factory=list)
    elapsed_ms: int = 0


class SpecialistFailure(BaseModel):
    domain: SpecialistDomain
    reason: FailureReason
    message: str = ""
    elapsed_ms: int = 0


SpecialistOutcome = Union[SpecialistReport, SpecialistFailure]


class WeightedReport(BaseModel):
    report: SpecialistReport
    configured_weight: float
    effective_weight: float


# ---------------------------------------------------------------------------
# Decision
# ---------------------------------------------------------------------------

class ConfidenceScore(BaseModel):
    score: float
    reasoning: str = ""


class PriceAssessment(BaseModel):
    favorability: Decimal = Field(description="-1 (unfavorable) to 1 (favorable)")
    suggested_price: Optional[Decimal] = None
    reasoning: str = ""


class LegAssessment(BaseModel):
    side: Side
    confidence: ConfidenceScore
    price_assessment: PriceAssessment


class SourceContribution(BaseModel):
    source_name: str
    relevance: float
    freshness_seconds: Optional[int] = None


class InformationRelevance(BaseModel):
    score: float
    source_contributions: List[SourceContribution] = Field(default_factory=list)


class DecayProfile(BaseModel):
    daily_rate: float
    model: DecayModel = DecayModel.LINEAR


class TimelinePoint(BaseModel):
    offset_hours: float
    projected_confidence: float
    projected_price_target: Optional[Decimal] = None
    note: Optional[str] = None


class TradeIntelligence(BaseModel):
    smartness_score: float
    assessments: List[str] = Field(default_factory=list)


class SpecialistContribution(BaseModel):
    """One surviving specialist's share of the decision."""
    domain: SpecialistDomain
    agent_name: str
    direction: DirectionLean
    confidence: float
    configured_weight: float
    effective_weight: float
    reasoning: str = ""
    warnings: List[str] = Field(default_factory=list)
    elapsed_ms: int = 0


class TradeDecision(BaseModel):
    """Final structured evaluation of a TradeProposal."""
    model_config = ConfigDict(frozen=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    schema_version: int = SCHEMA_VERSION
    proposal_id: uuid.UUID
    symbol: str
    decided_at: datetime = Field(default_factory=utcnow)
    recommendation: Recommendation
    overall_confidence: ConfidenceScore
    leg_assessments: List[LegAssessment] = Field(default_factory=list)
    price_assessment: Optional[PriceAssessment] = None
    confidence_decay: DecayProfile
    price_target_decay: Optional[DecayProfile] = None
    decay_projection: List[TimelinePoint] = Field(default_factory=list)
    information_relevance: InformationRelevance
    trade_intelligence: TradeIntelligence
    contributions: List[SpecialistContribution] = Field(default_factory=list)
    failed_specialists: List[SpecialistFailure] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    reasoning: str = ""
    processing_time_ms: int = 0
