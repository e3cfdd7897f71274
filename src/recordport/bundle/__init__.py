"""Bundle data model and portable document codec."""

from recordport.bundle.codec import (
    FORMAT_NAME,
    FORMAT_VERSION,
    decode_bundle,
    dumps,
    encode_bundle,
    loads,
    read_bundle,
    write_bundle,
)
from recordport.bundle.models import Bundle, Record, RecordGroup, UnresolvedReference

__all__ = [
    "FORMAT_NAME",
    "FORMAT_VERSION",
    "Bundle",
    "Record",
    "RecordGroup",
    "UnresolvedReference",
    "decode_bundle",
    "dumps",
    "encode_bundle",
    "loads",
    "read_bundle",
    "write_bundle",
]
