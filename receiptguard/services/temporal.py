"""
Temporal Field Reconciler.

The platform serializes every timestamp three ways:

    purchase_date      "2021-03-01 07:00:00 Etc/GMT"
    purchase_date_ms   "1614582000000"
    purchase_date_pst  "2021-02-28 23:00:00 America/Los_Angeles"

This module parses each representation independently and reduces them to a
single canonical TemporalTriple. Epoch milliseconds win whenever they parse;
otherwise the ISO-like form, then the zone-local form. Disagreement beyond
the tolerance is reported as an anomaly, never raised.
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta, timezone, tzinfo
from itertools import combinations
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from receiptguard.exceptions import MissingFieldError, UnparseableTimestampError
from receiptguard.models.domain import (
    PACIFIC,
    TIMESTAMP_FORMAT,
    Anomaly,
    AnomalyKind,
    TemporalTriple,
    epoch_ms_from_instant,
)

DEFAULT_TOLERANCE_MS = 1000

ISO_SUFFIX = ""
EPOCH_MS_SUFFIX = "_ms"
ZONE_LOCAL_SUFFIX = "_pst"

_CALENDAR_PATTERN = re.compile(
    r"^(?P<date>\d{4}-\d{2}-\d{2})[ T](?P<time>\d{2}:\d{2}:\d{2})"
    r"(?P<fraction>\.\d{1,6})?\s*(?P<zone>\S+)?$",
    re.ASCII,
)
_OFFSET_PATTERN = re.compile(r"^(?P<sign>[+-])(?P<hours>\d{2}):?(?P<minutes>\d{2})$", re.ASCII)
# Epoch milliseconds fit in a signed 64-bit integer
_EPOCH_PATTERN = re.compile(r"^-?[0-9]{1,19}$")

# Instants outside this window cannot be rendered back to calendar strings
MIN_EPOCH_MS = epoch_ms_from_instant(datetime(1900, 1, 1, tzinfo=UTC))
MAX_EPOCH_MS = epoch_ms_from_instant(datetime(9000, 1, 1, tzinfo=UTC))
_UTC_ALIASES = frozenset({"Z", "UTC", "GMT", "Etc/GMT", "Etc/UTC", "Etc/GMT+0", "Etc/GMT-0"})


@dataclass(frozen=True)
class Reconciliation:
    """Canonical triple for one timestamp field plus what was found on the way."""

    field: str
    triple: TemporalTriple
    anomalies: tuple[Anomaly, ...]
    max_drift_ms: int  # Largest pairwise difference between parsed representations


def parse_epoch_ms(value: object) -> int | None:
    """Parse an epoch-milliseconds value, given as int or base-10 string."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str) and _EPOCH_PATTERN.match(value.strip()):
        value = int(value.strip())
    if isinstance(value, int) and MIN_EPOCH_MS <= value <= MAX_EPOCH_MS:
        return value
    return None


def _resolve_zone(name: str | None, default: tzinfo) -> tzinfo | None:
    if name is None:
        return default
    if name in _UTC_ALIASES:
        return UTC
    offset = _OFFSET_PATTERN.match(name)
    try:
        if offset:
            delta = timedelta(hours=int(offset["hours"]), minutes=int(offset["minutes"]))
            return timezone(-delta if offset["sign"] == "-" else delta)
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        return None


def parse_calendar(value: object, default_zone: tzinfo) -> tuple[int, ...]:
    """
    Parse a calendar timestamp into candidate epoch milliseconds.

    Wall times that are ambiguous or skipped across a DST transition yield
    two candidates (fold 0 and fold 1); the caller picks the one nearest
    the other representations. Returns () when the value does not parse.
    """
    if not isinstance(value, str):
        return ()
    match = _CALENDAR_PATTERN.match(value.strip())
    if not match:
        return ()
    zone = _resolve_zone(match["zone"], default_zone)
    if zone is None:
        return ()
    try:
        naive = datetime.strptime(f"{match['date']} {match['time']}", TIMESTAMP_FORMAT)
    except ValueError:
        return ()
    if match["fraction"]:
        naive = naive.replace(microsecond=int(match["fraction"][1:].ljust(6, "0")))
    candidates = {
        epoch_ms_from_instant(naive.replace(tzinfo=zone, fold=fold)) for fold in (0, 1)
    }
    return tuple(sorted(c for c in candidates if MIN_EPOCH_MS <= c <= MAX_EPOCH_MS))


def _nearest(candidates: tuple[int, ...], reference: int) -> int:
    return min(candidates, key=lambda candidate: abs(candidate - reference))


def reconcile(
    payload: Mapping[str, object],
    name: str,
    *,
    required: bool,
    tolerance_ms: int = DEFAULT_TOLERANCE_MS,
    label: str | None = None,
) -> Reconciliation | None:
    """
    Reconcile the triple stored under name, name_ms and name_pst.

    Args:
        payload: Decoded receipt or in_app entry
        name: Base field name, e.g. "purchase_date"
        required: Whether a fully absent triple is a decode error
        tolerance_ms: Largest drift that is silently reconciled
        label: Field path used in anomalies and errors (defaults to name)

    Returns:
        Reconciliation, or None for an absent optional triple

    Raises:
        MissingFieldError: Required triple is entirely absent
        UnparseableTimestampError: No representation parses
    """
    label = label or name
    raw_iso = payload.get(name + ISO_SUFFIX)
    raw_ms = payload.get(name + EPOCH_MS_SUFFIX)
    raw_local = payload.get(name + ZONE_LOCAL_SUFFIX)
    raw_values = {
        name + ISO_SUFFIX: raw_iso,
        name + EPOCH_MS_SUFFIX: raw_ms,
        name + ZONE_LOCAL_SUFFIX: raw_local,
    }

    if all(value is None for value in raw_values.values()):
        if required:
            raise MissingFieldError(label)
        return None

    epoch_ms = parse_epoch_ms(raw_ms) if raw_ms is not None else None
    iso_candidates = parse_calendar(raw_iso, UTC)
    local_candidates = parse_calendar(raw_local, PACIFIC)
    parsed = {
        name + ISO_SUFFIX: bool(iso_candidates),
        name + EPOCH_MS_SUFFIX: epoch_ms is not None,
        name + ZONE_LOCAL_SUFFIX: bool(local_candidates),
    }

    anomalies: list[Anomaly] = []
    missing = [key for key, value in raw_values.items() if value is None]
    if missing:
        anomalies.append(
            Anomaly(
                kind=AnomalyKind.INCOMPLETE_TEMPORAL_TRIPLE,
                field=label,
                detail=f"Missing representations: {', '.join(missing)}",
            )
        )
    malformed = [key for key, value in raw_values.items() if value is not None and not parsed[key]]
    if malformed:
        anomalies.append(
            Anomaly(
                kind=AnomalyKind.MALFORMED_TIMESTAMP_REPRESENTATION,
                field=label,
                detail=f"Unparseable representations: {', '.join(malformed)}",
            )
        )

    if epoch_ms is not None:
        canonical = epoch_ms
    elif iso_candidates:
        canonical = iso_candidates[0]
    elif local_candidates:
        canonical = local_candidates[0]
    else:
        raise UnparseableTimestampError(label)

    resolved = [canonical] if epoch_ms is not None else []
    if iso_candidates:
        resolved.append(_nearest(iso_candidates, canonical))
    if local_candidates:
        resolved.append(_nearest(local_candidates, canonical))
    max_drift_ms = max((abs(a - b) for a, b in combinations(resolved, 2)), default=0)

    if max_drift_ms > tolerance_ms:
        anomalies.append(
            Anomaly(
                kind=AnomalyKind.TEMPORAL_MISMATCH,
                field=label,
                detail=f"Representations differ by {max_drift_ms} ms (tolerance {tolerance_ms} ms)",
            )
        )

    return Reconciliation(
        field=label,
        triple=TemporalTriple.from_epoch_ms(canonical),
        anomalies=tuple(anomalies),
        max_drift_ms=max_drift_ms,
    )
