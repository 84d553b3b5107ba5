"""Public identifiers exposed by the API in place of integer primary keys."""

import secrets
import string
from typing import Optional

_ALPHABET = string.ascii_lowercase + string.digits
PUBLIC_ID_LENGTH = 14


def public_id(prefix: Optional[str] = None) -> str:
    """Return 14 random lowercase alphanumerics, optionally as `"{prefix}_{id}"`."""
    value = "".join(secrets.choice(_ALPHABET) for _ in range(PUBLIC_ID_LENGTH))
    return f"{prefix}_{value}" if prefix else value
