"""Backing-Path Resolver."""

import logging

from vmamap.config import DEFAULT_PATH_MAX
from vmamap.models import ANONYMOUS, UNKNOWN
from vmamap.space import BackingFile

logger = logging.getLogger(__name__)


def fit_bounded(text: str, limit: int) -> str:
    """
    Truncate ``text`` so its UTF-8 form plus a terminating NUL fits in ``limit`` bytes.

    Undecodable bytes become U+FFFD first; a multi-byte character cut by the
    limit is dropped whole.
    """
    clean = text.encode("utf-8", "surrogateescape").decode("utf-8", "replace")
    encoded = clean.encode("utf-8")
    if len(encoded) < limit:
        return clean
    return encoded[: max(limit - 1, 0)].decode("utf-8", "ignore")


def resolve_backing_path(backing: BackingFile | None, limit: int = DEFAULT_PATH_MAX) -> str:
    """
    Resolve a region's backing file to a display path.

    Returns ``"anonymous"`` when there is no backing file and ``"unknown"``
    when the file's path cannot be resolved. Over-long paths are truncated,
    never rejected.
    """
    if backing is None:
        return ANONYMOUS
    try:
        path = backing.display_path()
    except (OSError, ValueError) as exc:
        logger.debug("backing path unresolvable: %s", exc)
        return UNKNOWN
    path = fit_bounded(path, limit)
    return path or UNKNOWN
