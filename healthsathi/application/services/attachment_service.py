"""
Attachment service — converts file bytes to self-describing data: URIs and back.
Reports persist the URI as an opaque string field.
"""

import base64
import binascii
import re
from typing import Tuple
from urllib.parse import unquote_to_bytes

from healthsathi.core.exceptions import InvalidAttachment

DEFAULT_MIME_TYPE = "application/octet-stream"

DATA_URI_PATTERN = re.compile(
    r"^data:(?P<mime>[^;,]*)(?P<params>(?:;[^;,]*)*),(?P<payload>.*)$", re.DOTALL
)


def encode_data_uri(data: bytes, mime_type: str = DEFAULT_MIME_TYPE) -> str:
    payload = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type or DEFAULT_MIME_TYPE};base64,{payload}"


def base64_to_bytes(payload: str) -> bytes:
    """Decode a bare base64 payload."""
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidAttachment("Attachment payload is not valid base64") from e


def decode_data_uri(uri: str) -> Tuple[bytes, str]:
    """Return ``(data, mime_type)`` for a data: URI."""
    match = DATA_URI_PATTERN.match(uri)
    if match is None:
        raise InvalidAttachment("Attachment is not a data: URI")

    # RFC 2397: an omitted media type means text/plain
    mime_type = match.group("mime") or "text/plain"
    params = [p for p in match.group("params").split(";") if p]
    payload = match.group("payload")

    if params and params[-1].lower() == "base64":
        return base64_to_bytes(payload), mime_type
    return unquote_to_bytes(payload), mime_type
