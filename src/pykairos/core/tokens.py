"""Hook token normalization.

Tokens travel through URL query parameters, JSON bodies, emails and
copy-paste, any of which can leave them percent-encoded or with trailing
quote/comma junk. Every lookup goes through normalize_token().
"""

import re
from urllib.parse import unquote

_TRAILING_JUNK = re.compile(r"['\",]+$")


def normalize_token(raw: str) -> str:
    """
    Normalize a hook token received from outside the process.

    Percent-decodes, then strips whitespace and trailing ', " and ,
    characters. Idempotent: normalize_token(normalize_token(t)) == normalize_token(t).

    Example:
        normalize_token("abc123%22")   # "abc123"
        normalize_token('abc123",')    # "abc123"
    """
    token = raw
    # Decode until stable so double-encoded tokens converge too
    while True:
        decoded = unquote(token)
        if decoded == token:
            break
        token = decoded

    while True:
        cleaned = _TRAILING_JUNK.sub("", token.strip()).strip()
        if cleaned == token:
            return cleaned
        token = cleaned
