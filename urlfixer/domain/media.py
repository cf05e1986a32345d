"""Naming rules for offloaded media (edit fingerprints, object keys)."""
from __future__ import annotations

import posixpath
import re

# Image editors save edited copies as name-e<hash>.ext or name-e<hash>-150x150.ext
EDIT_FINGERPRINT_RE = re.compile(r"-e[0-9a-f]{10,15}(?:-\d|\.)", re.IGNORECASE)
EDIT_SEGMENT_RE = re.compile(r"-e[0-9a-f]{10,15}(?=[-.]|$)", re.IGNORECASE)

UPLOADS_PATH_RE = re.compile(r"(app|wp-content|wp-includes)/uploads(/|$)")


def is_edited_filename(filename: str | None) -> bool:
    return bool(filename and EDIT_FINGERPRINT_RE.search(filename))


def strip_edit_fingerprint(filename: str) -> str:
    """Drop every -e<hex> segment: photo-e1a2b3c4d5e6-150x150.jpg -> photo-150x150.jpg"""
    return EDIT_SEGMENT_RE.sub("", filename)


def is_uploads_path(path: str | None) -> bool:
    return bool(path and UPLOADS_PATH_RE.search(path))


def canonical_key_prefix(key_base: str, filename: str) -> str:
    """Object key prefix covering every version of filename (and its edits)."""
    stem, _ext = posixpath.splitext(posixpath.basename(strip_edit_fingerprint(filename)))
    return f"{key_base}{stem}"


def attachment_key_base(upload_prefix: str, attached_file: str) -> str:
    """uploads/sites/3/ + 2025/05/photo.jpg -> uploads/sites/3/2025/05/"""
    prefix = upload_prefix.rstrip("/") + "/"
    date_dir = posixpath.dirname(attached_file.replace("\\", "/").lstrip("/"))
    return f"{prefix}{date_dir}/" if date_dir else prefix
