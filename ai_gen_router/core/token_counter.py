"""
Token accounting.

Carries the token counts a backend reports for one response.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class TokenUsage:
    """Token counts reported by the backend for one call.

    Reasoning tokens are billed as output and are included in
    ``output_tokens``.
    """
    input_tokens: int
    output_tokens: int

    def __post_init__(self):
        """Validate token counts."""
        if self.input_tokens < 0 or self.output_tokens < 0:
            raise ValueError("token counts must be >= 0")

    @property
    def total_tokens(self) -> int:
        """Total tokens used (input + output)."""
        return self.input_tokens + self.output_tokens
