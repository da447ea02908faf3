"""
Outlier Rejection by Geometric Consensus.

An emitter that has physically moved still reports its old coverage until
move detection catches up. Before fusing, estimates are divided into groups
whose members are all plausibly close to one another, and only the largest
group is used.

Two coverages are compatible when the gap between their disks is within
the kind's move-detection distance:

    distance(a, b) - accuracy(a) - accuracy(b) <= threshold

An estimate may belong to several groups.
"""

import logging
from typing import List, Sequence

from rfloc_core.metrics import get_metrics
from .geo import distance_m

logger = logging.getLogger(__name__)


def is_compatible(estimate, group: Sequence, threshold_m: float) -> bool:
    """
    True if an estimate is within range of every member of a group.

    Args:
        estimate: Candidate (lat, lon, accuracy_m)
        group: Current members
        threshold_m: Largest allowed gap between coverage disks (meters)
    """
    for other in group:
        gap = (distance_m(estimate.lat, estimate.lon, other.lat, other.lon)
               - estimate.accuracy_m - other.accuracy_m)
        if gap > threshold_m:
            return False
    return True


def divide_in_groups(estimates: Sequence, threshold_m: float) -> List[list]:
    """
    Group estimates so all members of each group are mutually compatible.

    One group is seeded per estimate (in input order); then every estimate
    is offered to every group it is not already in.

    Args:
        estimates: Coverage estimates
        threshold_m: Compatibility threshold (meters)

    Returns:
        List of groups, one per input estimate
    """
    groups = [[estimate] for estimate in estimates]

    for estimate in estimates:
        for group in groups:
            if any(member is estimate for member in group):
                continue
            if is_compatible(estimate, group, threshold_m):
                group.append(estimate)

    return groups


def cull(estimates: Sequence, threshold_m: float) -> list:
    """
    Largest mutually compatible group.

    Ties go to the group seeded earliest in the input.

    Args:
        estimates: Coverage estimates
        threshold_m: Compatibility threshold (meters)

    Returns:
        Members of the largest group ([] for empty input)
    """
    groups = divide_in_groups(estimates, threshold_m)
    if not groups:
        return []
    best = max(groups, key=len)
    if len(best) < len(estimates):
        logger.debug(f"Culled {len(estimates) - len(best)} of {len(estimates)} estimates")
    return best


def select_consensus(estimates: Sequence, characteristics) -> list:
    """
    Culled group for one emitter kind, if large enough to position with.

    Args:
        estimates: Coverage estimates of a single kind
        characteristics: RfCharacteristics of that kind

    Returns:
        The culled group, or [] if it has fewer than minimum_count members
    """
    group = cull(estimates, characteristics.move_detect_distance)
    if len(group) < characteristics.minimum_count:
        if estimates:
            get_metrics().increment_drop('insufficient_emitters')
            logger.debug(
                f"Consensus group of {len(group)} below minimum {characteristics.minimum_count}"
            )
        return []
    return group
