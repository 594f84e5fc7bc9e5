"""
User identifiers.

Callers identify divers with whatever their auth provider hands out: a
UUID, a member number or an email. Storage is keyed by UUID, so anything
else is mapped to a stable UUID built from its MD5 digest.
"""

import hashlib
from uuid import UUID


def normalize_user_id(raw: str) -> UUID:
    """
    Return the UUID for a user identifier.

    Real UUIDs pass through unchanged. Other strings always map to the same
    UUID, so a diver keeps their logs across sessions.
    """
    value = (raw or "").strip()
    if not value:
        raise ValueError("User identifier cannot be empty")

    try:
        return UUID(value)
    except ValueError:
        return UUID(hex=hashlib.md5(value.encode("utf-8")).hexdigest())
