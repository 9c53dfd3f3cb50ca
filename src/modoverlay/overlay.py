import dataclasses
import os
from typing import Iterable, List

from modoverlay.exceptions import FilesystemError, LayoutConflict
from modoverlay.materialize import materialize
from modoverlay.util import _debug_log
from modoverlay.workspace import Workspace


@dataclasses.dataclass(slots=True, frozen=True)
class OverrideItem:
    """Replacement content for one file of a module

    :param package: The module path (never a filesystem location).
    :param relative_path: "/"-separated path relative to the module root.
    :param content: The new content of the file.
    """

    package: str
    relative_path: str
    content: bytes


def _path_segments(item: OverrideItem) -> List[str]:
    path = item.relative_path
    # A single leading "./" is accepted
    if path.startswith("./"):
        path = path[2:]
    if not path or path.startswith("/") or os.path.isabs(path):
        raise LayoutConflict(
            f'The override path "{item.relative_path}" for {item.package} must be a'
            " non-empty path relative to the module root"
        )
    segments = path.split("/")
    for segment in segments:
        if segment in ("", ".", ".."):
            raise LayoutConflict(
                f'The override path "{item.relative_path}" for {item.package} must be'
                ' normalized and stay inside the module (no "..", "." or "//")'
            )
    return segments


def _ensure_parents(tree: str, segments: List[str], item: OverrideItem) -> str:
    current = tree
    for segment in segments[:-1]:
        current = os.path.join(current, segment)
        if os.path.islink(current):
            # Writing through it could land in the original tree
            raise LayoutConflict(
                f"Cannot write {item.relative_path} for {item.package}: {current} is a symlink"
            )
        if os.path.lexists(current) and not os.path.isdir(current):
            raise LayoutConflict(
                f"Cannot write {item.relative_path} for {item.package}: {current} is not a directory"
            )
        try:
            os.makedirs(current, mode=0o755, exist_ok=True)
        except OSError as e:
            raise FilesystemError(f"Could not create {current}: {e.strerror}") from e
    return os.path.join(current, segments[-1])


def apply_override(workspace: Workspace, item: OverrideItem) -> str:
    """Write `item` into the materialized tree of its module

    The destination is unlinked before writing so a hard link shared with the
    original tree is broken rather than written through.

    :return: The path of the written file.
    """
    segments = _path_segments(item)
    tree = materialize(workspace, item.package)
    dest = _ensure_parents(tree, segments, item)
    if os.path.isdir(dest) and not os.path.islink(dest):
        raise LayoutConflict(
            f"Cannot write {item.relative_path} for {item.package}: {dest} is a directory"
        )
    try:
        os.unlink(dest)
    except FileNotFoundError:
        pass
    except OSError as e:
        raise FilesystemError(f"Could not remove {dest}: {e.strerror}") from e

    try:
        fd = os.open(dest, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
        with os.fdopen(fd, "wb") as out:
            out.write(item.content)
    except OSError as e:
        raise FilesystemError(f"Could not write {dest}: {e.strerror}") from e
    _debug_log(f"Wrote {len(item.content)} bytes to {dest}")
    return dest


def apply_overrides(workspace: Workspace, items: Iterable[OverrideItem]) -> None:
    for item in items:
        apply_override(workspace, item)
