import dataclasses
import errno
import os
import shutil
from datetime import datetime
from typing import NoReturn

from modoverlay.exceptions import FilesystemError, LayoutConflict, ResolutionError
from modoverlay.redirects import add_redirect
from modoverlay.references import is_location_reference
from modoverlay.util import _debug_log, _info
from modoverlay.workspace import Workspace

VCS_METADATA_DIRS = frozenset({".git", ".hg", ".svn", ".bzr"})
# Linking is impossible here; copy the file instead
_LINK_FALLBACK_ERRNOS = frozenset(
    {errno.EXDEV, errno.EPERM, errno.EMLINK, errno.ENOTSUP, errno.EACCES}
)


@dataclasses.dataclass(slots=True)
class CopyStats:
    linked: int = 0
    copied: int = 0
    symlinks: int = 0


def overlay_key(package_id: str) -> str:
    """The directory (relative to the overlay dir) holding the tree of `package_id`"""
    if not package_id or is_location_reference(package_id):
        raise ResolutionError(
            f'"{package_id}" is not a module path and cannot be materialized'
        )
    segments = package_id.split("/")
    for segment in segments:
        if segment in ("", ".", "..") or "\\" in segment or "\0" in segment:
            raise ResolutionError(
                f'The module path "{package_id}" cannot be used as a directory name'
            )
    return os.path.join(*segments)


def _raise_walk_error(e: OSError) -> NoReturn:
    raise e


def _link_or_copy(source: str, dest: str, stats: CopyStats) -> None:
    try:
        os.link(source, dest)
    except OSError as e:
        if e.errno not in _LINK_FALLBACK_ERRNOS:
            raise
        shutil.copyfile(source, dest)
        shutil.copymode(source, dest)
        stats.copied += 1
    else:
        stats.linked += 1


def copy_tree(source_dir: str, dest_dir: str) -> CopyStats:
    """Replicate `source_dir` at `dest_dir` sharing file storage where possible

    Regular files become hard links (or copies when linking is not possible),
    symlinks are recreated and version-control metadata is skipped.  The resulting
    files may share storage with the source, so they must be unlinked rather than
    written to in place.
    """
    stats = CopyStats()
    try:
        for dirpath, dirnames, filenames in os.walk(
            source_dir, onerror=_raise_walk_error
        ):
            rel = os.path.relpath(dirpath, source_dir)
            target_dir = dest_dir if rel == os.curdir else os.path.join(dest_dir, rel)
            os.makedirs(target_dir, mode=0o755, exist_ok=True)

            for name in list(dirnames):
                path = os.path.join(dirpath, name)
                if name in VCS_METADATA_DIRS:
                    dirnames.remove(name)
                elif os.path.islink(path):
                    dirnames.remove(name)
                    os.symlink(os.readlink(path), os.path.join(target_dir, name))
                    stats.symlinks += 1

            for name in filenames:
                path = os.path.join(dirpath, name)
                target = os.path.join(target_dir, name)
                if os.path.islink(path):
                    os.symlink(os.readlink(path), target)
                    stats.symlinks += 1
                else:
                    _link_or_copy(path, target, stats)
    except OSError as e:
        raise FilesystemError(
            f"Could not copy {source_dir} to {dest_dir}: {e.strerror or e}"
        ) from e
    return stats


def materialize(workspace: Workspace, package_id: str) -> str:
    """Provide a private, writable tree of `package_id` inside the workspace

    The first call for a package fetches it, copies its source tree into the overlay
    dir and redirects the package there.  Later calls return the same directory.

    :return: The materialized directory.
    """
    existing = workspace.materialized.get(package_id)
    if existing is not None:
        return existing

    dest = os.path.join(workspace.overlay_dir, overlay_key(package_id))
    root_dir = workspace.root_dir
    toolchain = workspace.toolchain
    toolchain.fetch(root_dir, [package_id])

    if os.path.lexists(dest):
        if os.path.islink(dest) or not os.path.isdir(dest):
            raise LayoutConflict(
                f"Cannot materialize {package_id}: {dest} exists but is not a directory"
            )
        _debug_log(f"{dest} already exists; reusing it for {package_id}")
    else:
        source_dir = toolchain.locate(root_dir, package_id)
        start_time = datetime.now()
        stats = copy_tree(source_dir, dest)
        end_time = datetime.now()
        _info(
            f"Materialized {package_id} from {source_dir}: {stats.linked} linked,"
            f" {stats.copied} copied, {stats.symlinks} symlinks, took: {end_time - start_time}"
        )

    add_redirect(workspace, package_id, dest)
    workspace.materialized[package_id] = dest
    return dest
