"""Path sandbox: the single choke point between client paths and the filesystem.

Every file action resolves its client-supplied paths through ``resolve_path``
so containment and extension rules are applied identically everywhere.
"""
import os
from dataclasses import dataclass, field
from pathlib import Path

from .errors import BadRequest, Forbidden

PARENT_SEGMENT = '..'


@dataclass(frozen=True)
class ExtensionPolicy:
    """Which file extensions an action may touch.

    ``protected`` holds lower-case extensions (with the leading dot). When
    ``allow_protected`` is False any candidate mentioning one of them is
    refused.
    """
    protected: frozenset[str] = field(default_factory=frozenset)
    allow_protected: bool = False

    def blocks(self, candidate: str) -> bool:
        if self.allow_protected:
            return False
        lowered = candidate.lower()
        return any(ext in lowered for ext in self.protected)


def _is_within(path: str, root: str) -> bool:
    if path == root:
        return True
    return path.startswith(root.rstrip(os.sep) + os.sep)


def resolve_path(
    root: Path | str,
    candidate: str | None,
    policy: ExtensionPolicy | None = None,
    *,
    required: bool = True,
    invalid_msg: str = 'invalid filename',
    blocked_msg: str = 'forbidden extension',
) -> Path:
    """Resolve a client path against a project root.

    Args:
        root: Absolute project root folder
        candidate: Untrusted path relative to ``root``
        policy: Extension policy to enforce, or None to skip the check
        required: Reject empty candidates (otherwise they denote ``root``)
        invalid_msg: Message for malformed or escaping paths
        blocked_msg: Message for policy-blocked extensions

    Returns:
        Absolute, normalized path lexically contained in ``root``

    Raises:
        BadRequest: Empty, malformed, or escaping candidate
        Forbidden: Candidate matches a blocked extension
    """
    candidate = candidate or ''
    if not candidate and required:
        raise BadRequest('params missing')
    if '\x00' in candidate:
        raise BadRequest(invalid_msg)
    if policy is not None and policy.blocks(candidate):
        raise Forbidden(blocked_msg)
    # Textual reject, before anything touches the filesystem.
    if PARENT_SEGMENT in candidate:
        raise BadRequest(invalid_msg)

    root_abs = os.path.abspath(root)
    # Client paths are always relative to the project root.
    relative = candidate.lstrip('/\\')
    joined = os.path.normpath(os.path.join(root_abs, relative))
    if not _is_within(joined, root_abs):
        raise BadRequest(invalid_msg)

    # Symlinks inside the project must not lead outside of it either.
    if not _is_within(os.path.realpath(joined), os.path.realpath(root_abs)):
        raise BadRequest(invalid_msg)

    return Path(joined)
