"""Blob content codec.

File content travels as base64 of its UTF-8 bytes, so multi-byte
characters survive the trip unchanged.
"""

import base64
import binascii


def encode_content(content: str) -> str:
    """Encode text as base64 over its UTF-8 bytes.

    Raises:
        UnicodeEncodeError: If the text holds lone surrogates
    """
    return base64.b64encode(content.encode("utf-8")).decode("ascii")


def decode_content(encoded: str) -> str:
    """Decode base64 produced by ``encode_content`` or by the hosting API.

    GitHub wraps base64 at 60 columns, so whitespace is stripped first.
    """
    compact = "".join(encoded.split())
    try:
        raw = base64.b64decode(compact, validate=True)
    except binascii.Error as e:
        raise ValueError(f"Invalid base64 content: {e}")
    return raw.decode("utf-8")


def is_utf8_text(content: str) -> bool:
    """True when ``content`` can be encoded as strict UTF-8."""
    try:
        content.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True
