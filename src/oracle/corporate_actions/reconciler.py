"""Cross-source corporate action deduplication.

Reports of the same event from different providers are grouped by
(symbol, type, effective day). A group becomes verified once two distinct
sources agree on it. The most trusted member is kept as the representative
and its missing optional fields are backfilled from the other members.

Pure functions, no I/O. CorporateActionService feeds fetched and stored
records through here before validating and upserting them.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable
from datetime import date
from decimal import Decimal

from oracle.models import CorporateAction, CorporateActionType, RawCorporateAction

ActionKey = tuple[str, CorporateActionType, date]
ReliabilityFn = Callable[[str], Decimal]

# Optional fields copied from other members when the representative lacks them.
# Paired fields are replaced as a unit from one donor that has all of them.
_BACKFILL_GROUPS: tuple[tuple[str, ...], ...] = (
    ("split_ratio",),
    ("dividend_amount", "dividend_currency"),
    ("acquiring_symbol", "exchange_ratio"),
    ("ex_date",),
    ("record_date",),
    ("external_id",),
)


def group_by_key(raws: list[RawCorporateAction]) -> dict[ActionKey, list[RawCorporateAction]]:
    """Group records by deduplication key, preserving first-seen order."""
    groups: dict[ActionKey, list[RawCorporateAction]] = {}
    for raw in raws:
        groups.setdefault(raw.key, []).append(raw)
    return groups


def is_verified(group: list[RawCorporateAction]) -> bool:
    """Two distinct sources, or any member already verified."""
    sources = {raw.source for raw in group if raw.source}
    return len(sources) >= 2 or any(raw.verified for raw in group)


def reconcile_group(
    group: list[RawCorporateAction], reliability: ReliabilityFn
) -> RawCorporateAction:
    """Collapse one key's records into a single representative.

    Raises:
        ValueError: If the group is empty.
    """
    if not group:
        raise ValueError("cannot reconcile an empty group")

    ranked = sorted(group, key=lambda r: (r.verified, reliability(r.source)), reverse=True)
    representative = dataclasses.replace(ranked[0], symbol=ranked[0].symbol.upper())

    for fields in _BACKFILL_GROUPS:
        if all(getattr(representative, name) is not None for name in fields):
            continue
        donor = next(
            (r for r in ranked[1:] if all(getattr(r, name) is not None for name in fields)),
            None,
        )
        if donor is None:
            continue
        for name in fields:
            setattr(representative, name, getattr(donor, name))

    representative.verified = is_verified(group)
    return representative


def reconcile(
    raws: list[RawCorporateAction], reliability: ReliabilityFn
) -> list[RawCorporateAction]:
    """One representative per deduplication key."""
    return [reconcile_group(group, reliability) for group in group_by_key(raws).values()]


def widen(
    stored: CorporateAction, incoming: CorporateAction, reliability: ReliabilityFn
) -> bool:
    """Merge a reconciled action into its stored counterpart in place.

    Only widens: verified can go from False to True, the source can move to
    a more reliable provider, and an empty external id can be filled. Populated
    details and dates are never overwritten.

    Returns:
        True if the stored action changed.
    """
    changed = False
    if incoming.verified and not stored.verified:
        stored.verified = True
        changed = True
    if incoming.source and reliability(incoming.source) > reliability(stored.source):
        stored.source = incoming.source
        changed = True
    if stored.external_id is None and incoming.external_id is not None:
        stored.external_id = incoming.external_id
        changed = True
    return changed
