"""Helpers for client-supplied relative paths."""

import re

from docvault.core.exceptions import InvalidArgumentError

_SEPARATORS = re.compile(r"[/\\]")


def parse_relative_path(relative_path: str) -> tuple[list[str], str]:
    """Split a relative path into folder parts and a file name.

    Both ``/`` and ``\\`` separate segments; empty segments are dropped.

    Returns:
        Tuple of (folder parts, file name)

    Raises:
        InvalidArgumentError: If the path has no segments
    """
    parts = [part for part in _SEPARATORS.split(relative_path) if part]
    if not parts:
        raise InvalidArgumentError(f"Invalid relative path: {relative_path!r}")
    return parts[:-1], parts[-1]


def strip_extension(file_name: str) -> str:
    """Drop the last extension: ``archive.tar.gz`` -> ``archive.tar``.

    Names whose only dot is the leading one (``.env``) are kept as is.
    """
    dot = file_name.rfind(".")
    if dot <= 0:
        return file_name
    return file_name[:dot]
