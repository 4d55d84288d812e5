"""
Snapshot Codec

Encodes the full ledger state to JSON and back.

DESIGN DECISION: Storage holds raw numbers only. No display rounding is
ever applied on the way out, so export -> import is numerically lossless.
Timestamps are written as ISO-8601 strings and revived to datetimes by
the models on load.

Older exports used camelCase keys and a slightly different shape
(`isNegative` instead of a polarity, `type` instead of `kind`,
`exchangeRates` and `soundEnabled` at the top level). Those are upgraded
on load; data in the current shape passes through unchanged.
"""

import json
from typing import Any, Union

from pydantic import ValidationError

from budgetdrop.models.ledger import LedgerState
from budgetdrop.services.storage.interface import StorageError


class MalformedSnapshotError(StorageError):
    """Snapshot data is not valid JSON or does not match the ledger schema."""
    pass


_CHIP_KEYS = {
    "usdRate": "usd_rate_at_mint",
    "createdAt": "created_at",
}

_BUCKET_KEYS = {
    "type": "kind",
    "creditLimit": "credit_limit",
    "completedMilestones": "completed_milestones",
}

_TRANSACTION_KEYS = {
    "chipId": "chip_id",
    "bucketId": "bucket_id",
    "amount": "settled_amount",
    "type": "direction",
    "originalChipAmount": "original_chip_amount",
    "originalChipCurrency": "original_chip_currency",
    "usdRateAtTime": "rate_at_settlement",
}

_RATE_TABLE_KEYS = {
    "lastUpdated": "last_updated",
}


def _rename(item: dict, mapping: dict[str, str]) -> dict:
    renamed = {}
    for key, value in item.items():
        target = mapping.get(key, key)
        # keys already in the current shape win over legacy ones
        if target != key and target in item:
            continue
        renamed[target] = value
    return renamed


def _upgrade_chip(chip: dict) -> dict:
    chip = _rename(chip, _CHIP_KEYS)
    if "isNegative" in chip:
        negative = chip.pop("isNegative")
        chip.setdefault("polarity", "withdrawal" if negative else "deposit")
    return chip


def _upgrade_bucket(bucket: dict) -> dict:
    bucket = _rename(bucket, _BUCKET_KEYS)
    if bucket.get("kind") == "debt" and bucket.get("credit_limit") == 0:
        # old exports used 0 for "no limit"
        bucket["credit_limit"] = None
    return bucket


def upgrade_legacy(data: dict[str, Any]) -> dict[str, Any]:
    """Translate an export in the older camelCase shape to the current one."""
    data = dict(data)

    if "exchangeRates" in data and "rate_table" not in data:
        data["rate_table"] = _rename(dict(data.pop("exchangeRates")), _RATE_TABLE_KEYS)
    if "soundEnabled" in data and "preferences" not in data:
        data["preferences"] = {"sound_enabled": bool(data.pop("soundEnabled"))}

    data["chips"] = [_upgrade_chip(dict(c)) for c in data.get("chips", [])]
    data["buckets"] = [_upgrade_bucket(dict(b)) for b in data.get("buckets", [])]
    data["transactions"] = [
        _rename(dict(t), _TRANSACTION_KEYS) for t in data.get("transactions", [])
    ]
    return data


def dump_snapshot(state: LedgerState, indent: int = 2) -> str:
    """Encode a ledger state as JSON."""
    return state.model_dump_json(indent=indent)


def load_snapshot(data: Union[str, bytes, dict[str, Any]]) -> LedgerState:
    """
    Decode a ledger state from JSON text or an already-parsed dict.

    Raises:
        MalformedSnapshotError: If the input is not JSON, not an object,
                                or fails schema validation
    """
    if isinstance(data, (str, bytes)):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as e:
            raise MalformedSnapshotError(f"Snapshot is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MalformedSnapshotError(
            f"Snapshot must be a JSON object, got {type(data).__name__}"
        )

    try:
        upgraded = upgrade_legacy(data)
        return LedgerState.model_validate(upgraded)
    except (ValidationError, TypeError, ValueError) as e:
        raise MalformedSnapshotError(f"Snapshot does not match the ledger schema: {e}") from e
