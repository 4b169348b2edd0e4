"""Reconciliation of locally held targets with hub-pushed targets."""

from __future__ import annotations

from collections.abc import Sequence

from core.contracts import Target
from targets.identity import LOT_TOLERANCE, PRICE_TOLERANCE, targets_match


def merge_targets_from_hub(
    prev: Sequence[Target],
    incoming: Sequence[Target],
    *,
    lot_tolerance: float = LOT_TOLERANCE,
    price_tolerance: float = PRICE_TOLERANCE,
) -> list[Target]:
    """Merge a hub batch into the locally held list for one order.

    Incoming entries are authoritative for every id they mention. Local entries
    whose id the batch does not mention are kept, since a push may be a delta.
    Local temp entries (no id) are dropped once a value-equal entry shows up in
    the batch or among retained confirmed entries, and kept otherwise.

    Args:
        prev: Locally held list (may contain temp entries)
        incoming: Hub-delivered list for the same order
        lot_tolerance: Max lot difference for two targets to match
        price_tolerance: Max SL/TP difference for two targets to match

    Returns:
        The next canonical list: incoming entries first, then retained local ones
    """
    if not prev:
        return list(incoming)
    if not incoming:
        return list(prev)

    incoming_by_id: dict[str, Target] = {}
    incoming_no_id: list[Target] = []
    for target in incoming:
        if target.id is not None:
            incoming_by_id.setdefault(str(target.id), target)
        else:
            incoming_no_id.append(target)

    result: list[Target] = [*incoming_by_id.values(), *incoming_no_id]
    # Entries a local temp may be superseded by; retained temps never supersede each other.
    authoritative: list[Target] = list(result)

    for local in prev:
        if local.id is not None:
            if str(local.id) not in incoming_by_id:
                result.append(local)
                authoritative.append(local)
            continue

        superseded = any(
            targets_match(
                local,
                other,
                lot_tolerance=lot_tolerance,
                price_tolerance=price_tolerance,
            )
            for other in authoritative
        )
        if not superseded:
            result.append(local)

    return result
