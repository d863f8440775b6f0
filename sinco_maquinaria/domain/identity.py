"""Stream identities.

Imported entities get a stream id derived from their natural key so a
re-import of the same row lands on the same stream. The digest bytes are
read little-endian in the first three UUID groups, which keeps the ids equal
to the ones the legacy importer produced.
"""
from __future__ import annotations

import hashlib
import uuid

# The global configuration lives in exactly one stream with this id.
CONFIGURACION_GLOBAL_ID = "00000000-0000-0000-0000-000000000001"


def derive_stream_id(natural_key: str) -> str:
    """Stable, case-insensitive stream id for a natural key (e.g. a plate)."""
    digest = hashlib.md5(natural_key.lower().encode("utf-8"), usedforsecurity=False).digest()
    return str(uuid.UUID(bytes_le=digest))


def new_stream_id() -> str:
    return str(uuid.uuid4())
