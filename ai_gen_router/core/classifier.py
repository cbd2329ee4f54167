"""
Request complexity classification.

Keyword and length heuristics that sort a request into simple, medium or
complex. Pure and total: every string classifies, nothing raises.
"""

from typing import Tuple

from .tiers import DiagramComplexity


# Multi-step, comprehensive or detailed requests
COMPLEX_INDICATORS: Tuple[str, ...] = (
    "flowchart",
    "decision",
    "multiple steps",
    "entire",
    "complete",
    "comprehensive",
    "detailed",
    "integration",
    "architecture",
    "system design",
    "state machine",
    "sequence diagram",
    "interaction",
    "workflow",
    "microservices",
    "database",
    "authentication",
    "multi-tier",
    "distributed",
)

# Basic, quick requests
SIMPLE_INDICATORS: Tuple[str, ...] = (
    "basic",
    "simple",
    "quick",
    "org chart",
    "hierarchy",
    "list",
    "table",
    "bar chart",
    "pie chart",
    "timeline",
    "3 levels",
    "5 items",
    "small",
    "minimal",
)

COMPLEX_KEYWORD_THRESHOLD = 2
COMPLEX_LENGTH_THRESHOLD = 200
SIMPLE_LENGTH_THRESHOLD = 50


def _count_matches(text: str, indicators: Tuple[str, ...]) -> int:
    return sum(1 for indicator in indicators if indicator in text)


def classify(request_text: str) -> DiagramComplexity:
    """Classify a generation request by complexity.

    The complex check runs first, so a request that qualifies as both
    complex and simple is complex.

    Args:
        request_text: Free-text generation request

    Returns:
        COMPLEX if at least two complex keywords match or the text is
        longer than 200 characters; SIMPLE if any simple keyword matches
        or the text is shorter than 50 characters; MEDIUM otherwise
    """
    text = request_text.lower()
    length = len(text)

    complex_score = _count_matches(text, COMPLEX_INDICATORS)
    if complex_score >= COMPLEX_KEYWORD_THRESHOLD or length > COMPLEX_LENGTH_THRESHOLD:
        return DiagramComplexity.COMPLEX

    simple_score = _count_matches(text, SIMPLE_INDICATORS)
    if simple_score >= 1 or length < SIMPLE_LENGTH_THRESHOLD:
        return DiagramComplexity.SIMPLE

    return DiagramComplexity.MEDIUM
