from __future__ import annotations

import re
from typing import Collection, Optional
from urllib.parse import urlsplit

# Avatar hosts append size/crop options to the path, e.g. ".../photo=s88-c-k-c0x00ffffff-no-rj".
_SIZE_SUFFIX_RE = re.compile(r"=s\d+-.*$")


def _strip_size_suffix(value: str) -> str:
    return _SIZE_SUFFIX_RE.sub("", value)


def signature_from_reference(reference: object) -> str:
    """Reduce an image URL to ``host + path`` without the size/style suffix.

    References that carry no host (including signatures produced
    by this function) go through the raw-string fallback, so a signature maps
    to itself.
    """
    if not isinstance(reference, str):
        return ""
    raw = reference.strip()
    if not raw:
        return ""
    try:
        parts = urlsplit(raw)
        host = parts.hostname
    except ValueError:
        host = None
        parts = None
    if parts is None or not host:
        return _strip_size_suffix(raw.split("?", 1)[0])
    if host.startswith("www."):
        host = host[4:]
    return f"{host}{_strip_size_suffix(parts.path)}"


def is_image_blacklisted(signature: Optional[str], signatures: Collection[str]) -> bool:
    if not signature:
        return False
    return signature in signatures


__all__ = ["signature_from_reference", "is_image_blacklisted"]
