"""AI Agents package."""

from register_engine.agents.advisor import (
    AdvisorUnavailable,
    CompletionTransport,
    GeminiCompletionTransport,
    MatchAdvisor,
    extract_json_object,
)

__all__ = [
    "AdvisorUnavailable",
    "CompletionTransport",
    "GeminiCompletionTransport",
    "MatchAdvisor",
    "extract_json_object",
]
