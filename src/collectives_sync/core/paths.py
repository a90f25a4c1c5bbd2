"""Mapping between vault-relative paths and remote collective paths.

Local paths are POSIX style and relative to the vault root, e.g.
``notes/a.md``. Remote paths are absolute below the WebDAV user root, e.g.
``/Collectives/notes/a.md``. Everything here is a pure string transform.
"""

import posixpath


class PathMappingError(ValueError):
    """Raised when a remote path does not lie under the collective root."""

    def __init__(self, remote_path: str, remote_root: str):
        super().__init__(
            f"Remote path {remote_path!r} is not under collective root {remote_root!r}"
        )
        self.remote_path = remote_path
        self.remote_root = remote_root


def normalize_collective_path(path: str) -> str:
    """Leading slash, no trailing slash; root stays ``/``."""
    path = (path or "").strip()
    if not path.startswith('/'):
        path = '/' + path
    path = path.rstrip('/')
    return path or '/'


def normalize_local_path(path: str) -> str:
    """Vault-relative path without surrounding slashes or ``.`` segments."""
    path = (path or "").strip().replace('\\', '/')
    if not path.strip('/'):
        return ""
    normalized = posixpath.normpath(path)
    return normalized.strip('/') if normalized != '.' else ""


def _remote_root_with_slash(remote_root: str) -> str:
    root = normalize_collective_path(remote_root)
    return root if root.endswith('/') else root + '/'


def is_under_local_base(local_path: str, local_base: str) -> bool:
    """Whether ``local_path`` lies inside ``local_base`` on a segment boundary."""
    base = normalize_local_path(local_base)
    if not base:
        return True
    path = normalize_local_path(local_path)
    return path == base or path.startswith(base + '/')


def local_to_remote(local_path: str, local_base: str, remote_root: str) -> str:
    """Map a vault-relative file path onto the collective.

    The local base is stripped when ``local_path`` starts with it, a single
    leading slash is dropped from the remainder, and the result is appended
    to the remote root.
    """
    base = local_base or ""
    relative = local_path
    if base and relative.startswith(base):
        relative = relative[len(base):]
    if relative.startswith('/'):
        relative = relative[1:]
    return _remote_root_with_slash(remote_root) + relative


def remote_to_local(remote_path: str, remote_root: str, local_base: str) -> str:
    """Map an absolute remote path back into the vault.

    Raises:
        PathMappingError: if ``remote_path`` is not strictly under
            ``remote_root``.
    """
    prefix = _remote_root_with_slash(remote_root)
    if not remote_path.startswith(prefix) or len(remote_path) == len(prefix):
        raise PathMappingError(remote_path, remote_root)

    relative = remote_path[len(prefix):]
    base = normalize_local_path(local_base)
    if not base:
        return relative
    return f"{base}/{relative}"


def remote_parent(remote_path: str) -> str:
    """Directory part of a remote path, ``/`` for top-level entries."""
    parent = remote_path.rsplit('/', 1)[0]
    return parent or '/'


def local_parent(local_path: str) -> str:
    """Directory part of a vault-relative path, empty at the vault root."""
    if '/' not in local_path:
        return ""
    return local_path.rsplit('/', 1)[0]
