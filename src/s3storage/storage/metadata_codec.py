"""Header-safe encoding of user metadata keys.

S3 delivers user metadata as ``x-amz-meta-*`` HTTP headers, which come back
case-folded and with some separators mangled by proxies. Keys are therefore
stored in a lowercase, reversible form:

- ``a-z``, ``0-9`` and ``.`` are kept as-is,
- ``A-Z`` become ``-`` followed by the lowercase letter,
- any other character becomes ``-`` followed by six lowercase hex digits of
  its code point (the first digit is always ``0`` or ``1``, so it never
  collides with the uppercase escape).

Values are passed through unchanged.
"""

from __future__ import annotations

import logging
import string
from collections.abc import Mapping
from typing import Final

logger = logging.getLogger(__name__)

_ESCAPE: Final[str] = "-"
_PLAIN: Final[frozenset[str]] = frozenset(string.ascii_lowercase + string.digits + ".")
_HEX_WIDTH: Final[int] = 6


def encode_key(key: str) -> str:
    """Encode one metadata key into its stored form."""
    out: list[str] = []
    for char in key:
        if char in _PLAIN:
            out.append(char)
        elif "A" <= char <= "Z":
            out.append(_ESCAPE + char.lower())
        else:
            out.append(f"{_ESCAPE}{ord(char):0{_HEX_WIDTH}x}")
    return "".join(out)


def decode_key(stored: str) -> str | None:
    """Decode one stored key.

    Returns:
        The original key, or None if ``stored`` is not a valid encoding.
    """
    out: list[str] = []
    i = 0
    length = len(stored)
    while i < length:
        char = stored[i]
        if char != _ESCAPE:
            if char not in _PLAIN:
                return None
            out.append(char)
            i += 1
            continue

        if i + 1 >= length:
            return None
        marker = stored[i + 1]
        if marker in string.ascii_lowercase:
            out.append(marker.upper())
            i += 2
            continue

        code = stored[i + 1 : i + 1 + _HEX_WIDTH]
        if len(code) != _HEX_WIDTH or any(c not in string.hexdigits for c in code):
            return None
        try:
            out.append(chr(int(code, 16)))
        except ValueError:
            return None
        i += 1 + _HEX_WIDTH
    return "".join(out)


def to_stored(metadata: Mapping[str, str] | None) -> dict[str, str]:
    """Encode a caller metadata map for upload."""
    if not metadata:
        return {}
    return {encode_key(k): str(v) for k, v in metadata.items()}


def to_retrieved(metadata: Mapping[str, str] | None) -> dict[str, str]:
    """Decode a metadata map returned by the store.

    Keys that are not valid encodings (e.g. written by another tool) are kept
    verbatim.
    """
    if not metadata:
        return {}
    result: dict[str, str] = {}
    for stored, value in metadata.items():
        decoded = decode_key(stored.lower())
        if decoded is None:
            logger.debug("Keeping undecodable metadata key verbatim: %s", stored)
            decoded = stored
        result[decoded] = value
    return result
