"""
Storage key construction.

Keys are deterministic: ``{folder}/{owner_id}/{sanitized_name}``. The same
inputs always produce the same key, so re-uploading a file overwrites it
instead of fanning out duplicates.
"""

import re
from typing import Optional

from portal.config import DEFAULT_FOLDER
from portal.errors import ValidationError
from portal.models.documents import ResourceAddress

_OWNER_ID_RE = re.compile(r"[A-Za-z0-9_-]+")
_FOLDER_SEGMENT_RE = re.compile(r"[A-Za-z0-9_-]+")
_LINE_BREAKS_RE = re.compile(r"[\r\n\t]")
_ILLEGAL_NAME_CHARS_RE = re.compile(r"[^A-Za-z0-9._\- ]")


def _assert_non_empty(value, field_name: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field_name} must be a non-empty string")


def sanitize_owner_id(owner_id: str) -> str:
    """Return ``owner_id`` unchanged if it is safe, otherwise raise ValidationError."""
    _assert_non_empty(owner_id, "owner_id")
    if not _OWNER_ID_RE.fullmatch(owner_id):
        raise ValidationError("owner_id contains invalid characters")
    return owner_id


def sanitize_item_name(name: str) -> str:
    """
    Reduce an untrusted file name to a safe basename.

    Directory components are dropped (``../../secret.txt`` -> ``secret.txt``),
    control whitespace becomes a space and any other character outside
    ``[A-Za-z0-9._- ]`` becomes ``_``.
    """
    _assert_non_empty(name, "file name")

    # Treat both separators as path separators regardless of platform
    base = re.split(r"[\\/]", name)[-1]

    cleaned = _ILLEGAL_NAME_CHARS_RE.sub("_", _LINE_BREAKS_RE.sub(" ", base)).strip()

    if not cleaned or cleaned in (".", ".."):
        raise ValidationError("file name is invalid after sanitization")
    return cleaned


def sanitize_folder(folder: Optional[str]) -> str:
    if folder is None:
        return DEFAULT_FOLDER
    _assert_non_empty(folder, "folder")
    segments = folder.strip("/").split("/")
    if not all(_FOLDER_SEGMENT_RE.fullmatch(segment) for segment in segments):
        raise ValidationError("folder contains invalid characters")
    return "/".join(segments)


def owner_prefix(owner_id: str, folder: Optional[str] = None) -> str:
    """Prefix under which every object of ``owner_id`` lives, with trailing slash."""
    return f"{sanitize_folder(folder)}/{sanitize_owner_id(owner_id)}/"


def build_key(owner_id: str, item_name: str, folder: Optional[str] = None) -> str:
    return owner_prefix(owner_id, folder) + sanitize_item_name(item_name)


def build_address(owner_id: str, item_name: str, folder: Optional[str] = None,
                  namespace: str = "") -> ResourceAddress:
    """Pure: identical arguments always yield an identical address."""
    return ResourceAddress(namespace=namespace, path=build_key(owner_id, item_name, folder))
