"""Lambda entry points.

Each invocation builds its own engine from the environment and closes it
before returning; no client outlives a request.
"""

from ..config import Settings
from ..engine import AnalyticsEngine
from ..structured_logging import configure_logging

configure_logging()


def build_engine() -> AnalyticsEngine:
    """Build a DynamoDB-backed engine from environment variables."""
    return AnalyticsEngine.from_settings(Settings.from_environment())


__all__ = ["build_engine"]
