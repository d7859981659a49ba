"""
Persistence codec for tracked transactions.

Records are written as JSON. Values JSON cannot represent exactly are wrapped
in a tagged object so the decoder rebuilds the same type, not just its text:

    {"_type": "Decimal", "_data": "1.000000000000000001"}
    {"_type": "datetime", "_data": "2024-03-01T10:00:00.123456+00:00"}

Records still waiting for approval or cancelled by the user are dropped on
encode: after a reload they have no hash to watch.
"""

import json
from dataclasses import fields
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List

from ...domain.errors import CodecError
from ...domain.models.chain import ReceiptLike
from ...domain.models.status import TRANSIENT_STATUSES, TxRebroadcastStatus, TxStatus
from ...domain.models.transaction import PAYLOAD_TYPES, TxRecord

FORMAT_VERSION = 1

_TYPE = "_type"
_DATA = "_data"


def is_persistable(record: TxRecord) -> bool:
    return record.status not in TRANSIENT_STATUSES


def encode_transactions(records: Iterable[TxRecord]) -> str:
    payload = {
        "version": FORMAT_VERSION,
        "transactions": [_record_to_dict(r) for r in records if is_persistable(r)],
    }
    return json.dumps(payload, separators=(",", ":"))


def decode_transactions(blob: str) -> List[TxRecord]:
    try:
        payload = json.loads(blob)
    except ValueError as exc:
        raise CodecError(f"Persisted transactions are not valid JSON: {exc}") from exc

    if not isinstance(payload, dict) or payload.get("version") != FORMAT_VERSION:
        raise CodecError(f"Unsupported persisted transactions format: {str(payload)[:80]}")

    records = []
    for raw in payload.get("transactions", []):
        try:
            records.append(_record_from_dict(raw))
        except (KeyError, TypeError, ValueError, ArithmeticError) as exc:
            raise CodecError(f"Malformed persisted transaction {raw!r}: {exc}") from exc
    return records


# ------------------------------------------------------------------ #
# Records                                                            #
# ------------------------------------------------------------------ #
def _record_to_dict(record: TxRecord) -> Dict[str, Any]:
    payload_fields = {
        f.name: _to_tagged(getattr(record.payload, f.name)) for f in fields(record.payload)
    }
    return {
        "tx_no": record.tx_no,
        "account": record.account,
        "network_id": record.network_id,
        "meta": _to_tagged(record.meta),
        "start": _to_tagged(record.start),
        "last_change": _to_tagged(record.last_change),
        "end": _to_tagged(record.end),
        "dismissed": record.dismissed,
        "status": record.status.value,
        "payload": payload_fields,
    }


def _record_from_dict(raw: Dict[str, Any]) -> TxRecord:
    status = TxStatus(raw["status"])
    payload_type = PAYLOAD_TYPES[status]
    payload_kwargs = {k: _from_tagged(v) for k, v in raw.get("payload", {}).items()}
    return TxRecord(
        tx_no=int(raw["tx_no"]),
        account=raw["account"],
        network_id=raw["network_id"],
        meta=_from_tagged(raw["meta"]),
        start=_from_tagged(raw["start"]),
        last_change=_from_tagged(raw["last_change"]),
        end=_from_tagged(raw.get("end")),
        dismissed=bool(raw.get("dismissed", False)),
        payload=payload_type(**payload_kwargs),
    )


# ------------------------------------------------------------------ #
# Tagged values                                                      #
# ------------------------------------------------------------------ #
def _tag(kind: str, data: Any) -> Dict[str, Any]:
    return {_TYPE: kind, _DATA: data}


def _to_tagged(value: Any) -> Any:
    # bool before int: bool is an int subclass and must stay a bool
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Decimal):
        return _tag("Decimal", str(value))
    if isinstance(value, datetime):
        return _tag("datetime", value.isoformat())
    if isinstance(value, date):
        return _tag("date", value.isoformat())
    if isinstance(value, TxRebroadcastStatus):
        return _tag("TxRebroadcastStatus", value.value)
    if isinstance(value, ReceiptLike):
        return _tag(
            "Receipt",
            {
                "transaction_hash": value.transaction_hash,
                "status": value.status,
                "block_number": value.block_number,
                "block_hash": value.block_hash,
                "gas_used": value.gas_used,
                "raw": _to_tagged(value.raw),
            },
        )
    if isinstance(value, tuple):
        return _tag("tuple", [_to_tagged(v) for v in value])
    if isinstance(value, list):
        return [_to_tagged(v) for v in value]
    if isinstance(value, dict):
        encoded = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise CodecError(f"Only string keys can be persisted, got {key!r}")
            encoded[key] = _to_tagged(item)
        # a plain dict that happens to use the tag key must not decode as a tagged value
        return _tag("dict", encoded) if _TYPE in value else encoded
    raise CodecError(f"Cannot persist value of type {type(value).__name__}: {value!r}")


def _from_tagged(value: Any) -> Any:
    if isinstance(value, list):
        return [_from_tagged(v) for v in value]
    if not isinstance(value, dict):
        return value
    if _TYPE not in value:
        return {k: _from_tagged(v) for k, v in value.items()}

    kind, data = value[_TYPE], value.get(_DATA)
    if kind == "Decimal":
        return Decimal(data)
    if kind == "datetime":
        return datetime.fromisoformat(data)
    if kind == "date":
        return date.fromisoformat(data)
    if kind == "TxRebroadcastStatus":
        return TxRebroadcastStatus(data)
    if kind == "dict":
        return {k: _from_tagged(v) for k, v in data.items()}
    if kind == "tuple":
        return tuple(_from_tagged(v) for v in data)
    if kind == "Receipt":
        return ReceiptLike(
            transaction_hash=data["transaction_hash"],
            status=bool(data["status"]),
            block_number=data.get("block_number"),
            block_hash=data.get("block_hash"),
            gas_used=data.get("gas_used"),
            raw=_from_tagged(data.get("raw") or {}),
        )
    raise CodecError(f"Unknown tagged value type {kind!r}")


def check_persistable_meta(meta: Dict[str, Any]) -> None:
    """Raise ``CodecError`` now rather than when the first snapshot is written."""
    _to_tagged(meta)
