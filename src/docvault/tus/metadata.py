"""Codec for the tus ``Upload-Metadata`` header.

The header is a comma-separated list of ``key base64value`` pairs. A key
without a value is allowed and maps to an empty string.
"""

import base64
import binascii
from typing import Dict, Mapping

from docvault.core.exceptions import InvalidArgumentError


def _validate_key(key: str) -> None:
    if not key or not key.isascii() or any(c in key for c in " ,\t"):
        raise InvalidArgumentError(f"Invalid Upload-Metadata key: {key!r}")


def parse_metadata(header: str | None) -> Dict[str, str]:
    """Parse an ``Upload-Metadata`` header value into a dict.

    Raises:
        InvalidArgumentError: On empty pairs, bad keys, duplicate keys,
            invalid base64 or values that are not UTF-8
    """
    metadata: Dict[str, str] = {}
    if header is None or not header.strip():
        return metadata

    for raw_pair in header.split(","):
        pair = raw_pair.strip()
        parts = pair.split(" ")
        if not pair or len(parts) > 2:
            raise InvalidArgumentError(f"Malformed Upload-Metadata pair: {raw_pair!r}")

        key = parts[0]
        _validate_key(key)
        if key in metadata:
            raise InvalidArgumentError(f"Duplicate Upload-Metadata key: {key!r}")

        if len(parts) == 1:
            metadata[key] = ""
            continue

        try:
            metadata[key] = base64.b64decode(parts[1], validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            raise InvalidArgumentError(f"Invalid base64 value for Upload-Metadata key {key!r}") from e

    return metadata


def encode_metadata(metadata: Mapping[str, str]) -> str:
    """Encode a mapping into an ``Upload-Metadata`` header value."""
    pairs = []
    for key, value in metadata.items():
        _validate_key(key)
        if value == "":
            pairs.append(key)
        else:
            pairs.append(f"{key} {base64.b64encode(value.encode('utf-8')).decode('ascii')}")
    return ",".join(pairs)
