from .codec import (
    encode_transactions,
    decode_transactions,
    is_persistable,
    check_persistable_meta,
    FORMAT_VERSION,
)

__all__ = [
    "encode_transactions",
    "decode_transactions",
    "is_persistable",
    "check_persistable_meta",
    "FORMAT_VERSION",
]
