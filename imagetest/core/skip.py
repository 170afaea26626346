"""Label-based skip policy for harness creation."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from imagetest.inventory.models import Feature


def should_skip(labels: Mapping[str, str], features: Iterable[Feature]) -> bool:
    """Decide whether a harness should not be created.

    Skipping is only possible when runtime labels are given. A harness is
    skipped as soon as any one of its features carries a runtime label key
    with a different value; a feature without the key imposes no
    constraint. The decision covers the whole harness, even when other
    features under it match.

    Parameters
    ----------
    labels : Mapping[str, str]
        Provider-wide runtime label filter
    features : Iterable[Feature]
        Features registered against the harness

    Returns
    -------
    bool
        True if the harness should be skipped
    """
    if not labels:
        return False

    for feature in features:
        for key, value in labels.items():
            if key in feature.labels and feature.labels[key] != value:
                return True

    return False
