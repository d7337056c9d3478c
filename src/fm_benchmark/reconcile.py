"""
Reconciliation of estimated token counts against ground truth.

Pure computation over already-parsed records; reading trace exports lives in
`trace`.
"""

from .models import (
    AccuracyTier,
    ActualTokenCounts,
    BenchmarkMetrics,
    ComparisonResult,
    TokenComparison,
)


def compare_counts(estimated: int, actual: int) -> TokenComparison:
    """
    Compare one estimated count with its actual value.

    The percentage is relative to the estimate and is 0 when the estimate is 0.
    """
    difference = actual - estimated
    percent = difference / estimated * 100 if estimated > 0 else 0.0
    return TokenComparison(
        estimated=estimated,
        actual=actual,
        difference=difference,
        percent_difference=percent
    )


def classify_accuracy(accuracy: float) -> AccuracyTier:
    """Bucket an accuracy score (100 - |total % difference|) into a tier."""
    if accuracy >= 95:
        return AccuracyTier.EXCELLENT
    if accuracy >= 90:
        return AccuracyTier.GOOD
    if accuracy >= 80:
        return AccuracyTier.NEEDS_IMPROVEMENT
    return AccuracyTier.POOR


def reconcile(estimated: BenchmarkMetrics, actual: ActualTokenCounts) -> ComparisonResult:
    """
    Compare a run's estimates with ground-truth counts.

    Actual throughput uses the run's own duration, since trace counts carry no
    independent timing.
    """
    prompt = compare_counts(estimated.prompt_token_estimate, actual.prompt_tokens)
    response = compare_counts(estimated.response_token_estimate, actual.response_tokens)
    total = compare_counts(estimated.total_token_estimate, actual.total_tokens)

    duration = estimated.duration
    actual_tps = actual.total_tokens / duration if duration > 0 else None

    accuracy = 100.0 - abs(total.percent_difference)

    return ComparisonResult(
        prompt=prompt,
        response=response,
        total=total,
        duration=duration,
        estimated_tokens_per_second=estimated.tokens_per_second,
        actual_tokens_per_second=actual_tps,
        accuracy=accuracy,
        tier=classify_accuracy(accuracy)
    )
