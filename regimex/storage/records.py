"""
Versioned JSON records.

Every persisted entity is wrapped as

    {"schema": <kind>, "version": <int>, "data": {...}}

so readers can reject foreign or future payloads instead of misparsing
them. Older deployments stored some entities as delimiter-joined strings;
the legacy parsers below read those and preserve their field order.
"""

import json
from typing import Any, Callable, Dict, Optional

from regimex.errors import CorruptStateError

SCHEMA_VERSION = 1


def dump_record(kind: str, payload: Dict[str, Any]) -> str:
    return json.dumps(
        {"schema": kind, "version": SCHEMA_VERSION, "data": payload},
        sort_keys=True,
    )


def load_record(
    kind: str,
    raw: Optional[str],
    legacy_parser: Optional[Callable[[str], Dict[str, Any]]] = None,
) -> Optional[Dict[str, Any]]:
    """
    Decode a stored record.

    Args:
        kind: Expected schema name
        raw: Stored string (None when the key is absent)
        legacy_parser: Fallback for pre-JSON delimited values

    Returns:
        The record's data dict, or None when raw is None

    Raises:
        CorruptStateError: Malformed JSON, wrong schema or unsupported version
    """
    if raw is None:
        return None

    try:
        envelope = json.loads(raw)
    except ValueError:
        envelope = None

    if not isinstance(envelope, dict):
        if legacy_parser is not None:
            try:
                return legacy_parser(raw)
            except (ValueError, IndexError) as e:
                raise CorruptStateError(f"Unparseable legacy {kind} record: {raw!r}") from e
        raise CorruptStateError(f"Malformed {kind} record: {raw!r}")

    if envelope.get("schema") != kind:
        raise CorruptStateError(f"Expected {kind} record, found {envelope.get('schema')!r}")
    version = envelope.get("version")
    if not isinstance(version, int) or version < 1 or version > SCHEMA_VERSION:
        raise CorruptStateError(f"Unsupported {kind} record version: {version!r}")
    data = envelope.get("data")
    if not isinstance(data, dict):
        raise CorruptStateError(f"{kind} record has no data object")
    return data


# ========================================
# LEGACY DELIMITED FORMATS
# ========================================

def parse_legacy_position(raw: str) -> Dict[str, Any]:
    """asset|size|averagePrice|unrealizedPnL|lastUpdate"""
    parts = raw.split("|")
    if len(parts) != 5:
        raise ValueError(f"position needs 5 fields, got {len(parts)}")
    return {
        "asset": parts[0],
        "size": int(parts[1]),
        "average_price": int(parts[2]),
        "unrealized_pnl": int(parts[3]),
        "last_update": float(parts[4]),
    }


def parse_legacy_risk_parameters(raw: str) -> Dict[str, Any]:
    """maxPositionSize|maxLeverage|stopLossPercent|maxDailyLoss|cooldownPeriod"""
    parts = raw.split("|")
    if len(parts) != 5:
        raise ValueError(f"risk parameters need 5 fields, got {len(parts)}")
    return {
        "max_position_size": int(parts[0]),
        "max_leverage": int(parts[1]),
        "stop_loss_percent": int(parts[2]),
        "max_daily_loss": int(parts[3]),
        "cooldown_period": int(parts[4]),
    }


def parse_legacy_transition_log(raw: str) -> Dict[str, Any]:
    """Semicolon-separated timestamp:from:to:reason entries"""
    entries = []
    for chunk in raw.split(";"):
        if not chunk:
            continue
        timestamp, from_state, to_state, reason = chunk.split(":", 3)
        entries.append({
            "timestamp": float(timestamp),
            "from_state": from_state,
            "to_state": to_state,
            "reason": reason,
        })
    return {"transitions": entries}
