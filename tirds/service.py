"""
Process bootstrap shared by the CLI and the HTTP service.
"""
import logging
import sys
from typing import Optional

from .cache.reader import CacheReader
from .agents.orchestrator import Orchestrator
from .config import TirdsSettings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Send all logs to stderr; stdout is reserved for decision output."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        stream=sys.stderr,
    )


def build_orchestrator(settings: TirdsSettings, cache: Optional[CacheReader] = None) -> Orchestrator:
    cache = cache or CacheReader(settings.cache)
    return Orchestrator(settings, cache)
