"""AI Agents package."""

from finance_pro.agents.advisor import (
    DEFAULT_ADVICE,
    NOT_CONFIGURED_ADVICE,
    UNAVAILABLE_ADVICE,
    AdvisoryAgent,
)

__all__ = [
    "DEFAULT_ADVICE",
    "NOT_CONFIGURED_ADVICE",
    "UNAVAILABLE_ADVICE",
    "AdvisoryAgent",
]
