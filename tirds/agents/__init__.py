"""Specialist agents, orchestration and synthesis."""

from .orchestrator import EvaluationRun, EvaluationState, Orchestrator, renormalize_weights
from .specialist import (
    MacroSpecialist,
    SectorSpecialist,
    SentimentSpecialist,
    Specialist,
    TechnicalSpecialist,
    build_specialists,
)
from .synthesizer import Synthesizer

__all__ = [
    "EvaluationRun",
    "EvaluationState",
    "MacroSpecialist",
    "Orchestrator",
    "SectorSpecialist",
    "SentimentSpecialist",
    "Specialist",
    "Synthesizer",
    "TechnicalSpecialist",
    "build_specialists",
    "renormalize_weights",
]
