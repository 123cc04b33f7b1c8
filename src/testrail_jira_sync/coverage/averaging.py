"""Cross-pass accumulation and averaging of per-issue percentages."""

from collections.abc import Iterable, Mapping, Sequence

from testrail_jira_sync.coverage.metrics import PercentagePair, round_half_up

PercentageHistory = dict[str, list[PercentagePair]]


def collect_batch(
    contributions: Iterable[Mapping[str, PercentagePair]],
) -> PercentageHistory:
    """Group per-milestone contributions by issue key, in processing order."""
    batch: PercentageHistory = {}
    for contribution in contributions:
        for key, pair in contribution.items():
            batch.setdefault(key, []).append(pair)
    return batch


def merge_percentages(
    stored: Mapping[str, Sequence[PercentagePair]],
    batch: Mapping[str, Sequence[PercentagePair]],
) -> PercentageHistory:
    """Append a batch to the stored history.

    Returns a new mapping; neither input is modified. Existing pairs are
    never overwritten.
    """
    merged: PercentageHistory = {key: list(pairs) for key, pairs in stored.items()}
    for key, pairs in batch.items():
        merged[key] = merged.get(key, []) + list(pairs)
    return merged


def average_pairs(pairs: Sequence[PercentagePair]) -> PercentagePair:
    """Average a non-empty sequence of pairs, rounding half up.

    Raises:
        ValueError: If ``pairs`` is empty.
    """
    if not pairs:
        msg = "Cannot average an empty sequence of percentages"
        raise ValueError(msg)
    count = len(pairs)
    return PercentagePair(
        coverage=round_half_up(sum(p.coverage for p in pairs) / count),
        pass_rate=round_half_up(sum(p.pass_rate for p in pairs) / count),
    )


def average_percentages(
    history: Mapping[str, Sequence[PercentagePair]],
) -> dict[str, PercentagePair]:
    """Average every key's full history; keys with no samples are left out."""
    return {key: average_pairs(pairs) for key, pairs in history.items() if pairs}
