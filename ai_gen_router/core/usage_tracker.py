"""
Model usage tracking.

Bounded, append-only in-memory log of generation outcomes with aggregate
statistics for cost and quality analysis. The log is the only shared
mutable state in the router; one lock guards append-and-evict and every
snapshot.
"""

import logging
import threading
from collections import Counter, deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .orchestrator import GenerationAttemptResult
from .tiers import ModelTier

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 1000


@dataclass(frozen=True)
class UsageRecord:
    """Immutable record of one generation outcome.

    Trimmed copy of the result fields needed for aggregation.
    """
    timestamp: datetime
    model: str
    reasoning_effort: Optional[str]
    tokens_used: int
    generation_time_ms: float
    fallback_occurred: bool
    success: bool
    estimated_cost: float

    @classmethod
    def from_result(cls, result: GenerationAttemptResult) -> "UsageRecord":
        """Build a record from an orchestrator result."""
        return cls(
            timestamp=datetime.now(timezone.utc),
            model=result.model.value,
            reasoning_effort=result.reasoning_effort.value if result.reasoning_effort else None,
            tokens_used=result.tokens_used,
            generation_time_ms=result.latency_ms,
            fallback_occurred=result.fallback_occurred,
            success=result.success,
            estimated_cost=result.estimated_cost,
        )


@dataclass(frozen=True)
class AggregateStats:
    """Aggregated usage statistics over the current log."""
    total_requests: int
    success_rate: float  # Percentage (0-100)
    fallback_rate: float  # Percentage (0-100)
    total_cost: float
    avg_cost_per_request: float
    avg_tokens: float
    avg_generation_time_ms: float
    model_distribution: Dict[str, int]
    reasoning_distribution: Dict[str, int]


@dataclass(frozen=True)
class CostComparison:
    """Average cost per request of two tiers, for ROI analysis."""
    baseline_model: str
    candidate_model: str
    baseline_avg_cost: float
    candidate_avg_cost: float
    savings: float
    savings_percentage: float


class UsageTracker:
    """Thread-safe, bounded log of model usage.

    Keeps the most recent ``capacity`` records; the oldest record is
    evicted first once the log is full.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        """Initialize the tracker.

        Args:
            capacity: Maximum number of records kept in memory
        """
        if capacity <= 0:
            raise ValueError("capacity must be > 0")
        self.capacity = capacity
        self._records: deque = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def log(self, record: UsageRecord) -> None:
        """Append a usage record, evicting the oldest when full."""
        with self._lock:
            self._records.append(record)

        logger.info(
            "[Model Usage] %s%s - %d tokens, %.0fms, $%.4f%s %s",
            record.model,
            f" ({record.reasoning_effort})" if record.reasoning_effort else "",
            record.tokens_used,
            record.generation_time_ms,
            record.estimated_cost,
            " (fallback)" if record.fallback_occurred else "",
            "ok" if record.success else "failed",
        )

    def log_result(self, result: GenerationAttemptResult) -> UsageRecord:
        """Record the outcome of an orchestrated generation."""
        record = UsageRecord.from_result(result)
        self.log(record)
        return record

    def _snapshot(self) -> List[UsageRecord]:
        with self._lock:
            return list(self._records)

    def stats(self) -> Optional[AggregateStats]:
        """Compute aggregate statistics.

        Returns:
            AggregateStats for a point-in-time snapshot of the log, or
            None if the log is empty
        """
        records = self._snapshot()
        total = len(records)
        if total == 0:
            return None

        successful = 0
        with_fallback = 0
        total_cost = 0.0
        total_tokens = 0
        total_time = 0.0
        models: Counter = Counter()
        efforts: Counter = Counter()

        for record in records:
            successful += record.success
            with_fallback += record.fallback_occurred
            total_cost += record.estimated_cost
            total_tokens += record.tokens_used
            total_time += record.generation_time_ms
            models[record.model] += 1
            if record.reasoning_effort:
                efforts[record.reasoning_effort] += 1

        return AggregateStats(
            total_requests=total,
            success_rate=successful * 100 / total,
            fallback_rate=with_fallback * 100 / total,
            total_cost=total_cost,
            avg_cost_per_request=total_cost / total,
            avg_tokens=total_tokens / total,
            avg_generation_time_ms=total_time / total,
            model_distribution=dict(models),
            reasoning_distribution=dict(efforts),
        )

    def recent(self, count: int = 10) -> List[UsageRecord]:
        """Get the most recent records, oldest first (for debugging)."""
        if count <= 0:
            return []
        return self._snapshot()[-count:]

    def record_count(self) -> int:
        """Number of records currently held."""
        with self._lock:
            return len(self._records)

    def clear(self) -> None:
        """Drop all records."""
        with self._lock:
            self._records.clear()

    def compare_costs(
        self,
        baseline: ModelTier = ModelTier.GPT_4O,
        candidate: ModelTier = ModelTier.GPT_5,
    ) -> Optional[CostComparison]:
        """Compare the average cost per request of two tiers.

        Args:
            baseline: Tier to compare against
            candidate: Tier whose savings are reported

        Returns:
            CostComparison, or None if either tier has no records
        """
        records = self._snapshot()
        baseline_costs = [r.estimated_cost for r in records if r.model == baseline.value]
        candidate_costs = [r.estimated_cost for r in records if r.model == candidate.value]

        if not baseline_costs or not candidate_costs:
            return None

        baseline_avg = sum(baseline_costs) / len(baseline_costs)
        candidate_avg = sum(candidate_costs) / len(candidate_costs)
        savings = baseline_avg - candidate_avg
        savings_percentage = savings / baseline_avg * 100 if baseline_avg else 0.0

        return CostComparison(
            baseline_model=baseline.value,
            candidate_model=candidate.value,
            baseline_avg_cost=baseline_avg,
            candidate_avg_cost=candidate_avg,
            savings=savings,
            savings_percentage=savings_percentage,
        )


# Global tracker instance
_default_tracker: Optional[UsageTracker] = None
_default_tracker_lock = threading.Lock()


def get_usage_tracker() -> UsageTracker:
    """Get the process-wide usage tracker.

    Returns:
        The shared UsageTracker instance
    """
    global _default_tracker
    with _default_tracker_lock:
        if _default_tracker is None:
            _default_tracker = UsageTracker()
        return _default_tracker
