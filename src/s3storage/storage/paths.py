"""Virtual path <-> object key translation.

Virtual paths are tenant-relative (``/flows/run-1/out.csv``) and may carry the
public ``storage://`` scheme. Object keys are flat store keys prefixed with
``/<tenant_id>`` when a tenant is set.

Scheme URIs are percent-encoded: ``from_key`` quotes everything but unreserved
characters and "/", and ``uri_path`` unquotes, so any key survives the trip
out to a URI and back. Bare paths are taken literally.
"""

from __future__ import annotations

from typing import Final
from urllib.parse import quote, unquote

from s3storage.storage.errors import InvalidArgumentError, PathTraversalError

STORAGE_SCHEME: Final[str] = "storage"
SEPARATOR: Final[str] = "/"
ROOT: Final[str] = "/"


def uri_path(uri: str | None) -> str:
    """Extract the path component of a virtual URI.

    ``None`` and the empty string map to the root. For scheme-qualified URIs
    everything after "://" is the percent-encoded path: "#" and "?" are plain
    characters and an authority, if present, is the first segment. Bare paths
    are returned untouched.
    """
    if not uri:
        return ROOT
    if "://" not in uri:
        return uri
    path = unquote(uri.split("://", 1)[1])
    if not path.startswith(SEPARATOR):
        path = SEPARATOR + path
    return path


def _validate_tenant(tenant_id: str) -> None:
    if SEPARATOR in tenant_id or ".." in tenant_id:
        raise InvalidArgumentError(
            message=f"Invalid tenant id: {tenant_id!r}",
            tenant_id=tenant_id,
        )


def to_key(tenant_id: str | None, uri: str | None) -> str:
    """Translate a virtual URI into an object key.

    Args:
        tenant_id: Isolation namespace, or None for untenanted storage.
        uri: Virtual path or ``storage://`` URI; None means the root.

    Returns:
        Object key, always starting with "/".

    Raises:
        PathTraversalError: If the URI contains "..".
        InvalidArgumentError: If the tenant id is malformed.
    """
    path = uri_path(uri)
    if ".." in path:
        raise PathTraversalError(tenant_id=tenant_id, key=path)
    if not path.startswith(SEPARATOR):
        path = SEPARATOR + path

    if tenant_id:
        _validate_tenant(tenant_id)
        return SEPARATOR + tenant_id + path
    return path


def strip_tenant(tenant_id: str | None, key: str) -> str:
    """Remove the tenant prefix from an object key, returning the virtual path."""
    if tenant_id:
        tenant_prefix = SEPARATOR + tenant_id
        if key == tenant_prefix:
            return ROOT
        if key.startswith(tenant_prefix + SEPARATOR):
            key = key[len(tenant_prefix) :]
    if not key.startswith(SEPARATOR):
        key = SEPARATOR + key
    return key


def from_key(tenant_id: str | None, key: str) -> str:
    """Translate an object key back into a canonical ``storage://`` URI.

    The path is percent-encoded, so ``to_key(tenant_id, from_key(tenant_id, key))``
    gives back ``key`` even when it holds "#", "?", "%" or spaces.
    """
    return f"{STORAGE_SCHEME}://" + quote(strip_tenant(tenant_id, key), safe=SEPARATOR)


def as_prefix(key: str) -> str:
    """Return the key with exactly one trailing separator."""
    return key if key.endswith(SEPARATOR) else key + SEPARATOR


def parent_prefix(key: str) -> str:
    """Return the directory prefix containing ``key`` (with trailing "/").

    ``/a/b/c/file`` -> ``/a/b/c/``; ``/a/b/`` -> ``/a/``; ``/file`` -> ``/``.
    """
    trimmed = key.rstrip(SEPARATOR)
    index = trimmed.rfind(SEPARATOR)
    if index < 0:
        return ROOT
    return trimmed[: index + 1]


def file_name(path: str) -> str:
    """Return the final segment of a path, or "/" for the root."""
    trimmed = path.rstrip(SEPARATOR)
    if not trimmed:
        return ROOT
    return trimmed.rsplit(SEPARATOR, 1)[-1]
