from typing import List, Tuple

from services.reconciliation import RunStats

HIGH_SUCCESS_RATE = 0.8
MEDIUM_SUCCESS_RATE = 0.5
NOT_FOUND_WARNING_RATIO = 0.3


def _percent(part: int, whole: int) -> float:
    if whole == 0:
        return 0.0
    return round(part / whole * 100, 1)


def summarize(stats: RunStats) -> List[Tuple[str, int, float]]:
    """Rows of (label, count, percent of processed) for a console table."""
    processed = stats.processed
    return [
        ("Processed records", processed, 100.0 if processed else 0.0),
        ("Matched products", stats.matched, _percent(stats.matched, processed)),
        ("Products not found", stats.not_found, _percent(stats.not_found, processed)),
        ("Invalid records", stats.invalid, _percent(stats.invalid, processed)),
        ("Failed records", stats.failed, _percent(stats.failed, processed)),
        ("Categories created", stats.categories_created, _percent(stats.categories_created, processed)),
        ("Brands created", stats.brands_created, _percent(stats.brands_created, processed)),
        ("Brands assigned", stats.brands_assigned, _percent(stats.brands_assigned, processed)),
    ]


def verdict(stats: RunStats) -> str:
    if stats.success_rate > HIGH_SUCCESS_RATE:
        return "high"
    if stats.success_rate > MEDIUM_SUCCESS_RATE:
        return "medium"
    return "low"


def recommendations(stats: RunStats) -> List[str]:
    advice = []

    if stats.not_found > stats.processed * NOT_FOUND_WARNING_RATIO:
        advice.append("Product titles in the source probably differ from the catalog naming")
        advice.append("Consider lowering the word similarity threshold")

    if stats.invalid > 0:
        advice.append("Fix the source records that are missing a title or categories")

    if stats.categories_created > stats.matched * 2:
        advice.append("Many new categories were created; check category naming against the catalog")

    if stats.failed > 0:
        advice.append("Some category assignments failed; check the log for store errors")

    return advice
