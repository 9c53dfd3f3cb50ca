import os
import secrets
import shutil
from datetime import datetime, timezone
from typing import Optional, Sequence

from modoverlay.exceptions import FilesystemError, ManifestParseError
from modoverlay.gomod import (
    Manifest,
    ModuleVersion,
    iter_directory_redirects,
    parse_manifest,
)
from modoverlay.redirects import add_redirect, add_requirement
from modoverlay.references import is_location_reference, workspace_location
from modoverlay.util import _info
from modoverlay.workspace import BaseManifest, Workspace

# Never looked up: the original module is always redirected to its source tree
PLACEHOLDER_VERSION = "v0.0.0"


def generate_identity(now: Optional[datetime] = None) -> str:
    if now is None:
        now = datetime.now(timezone.utc)
    return f"modoverlay_{now.strftime('%Y%m%d%H%M%S')}_{secrets.token_hex(4)}"


def reanchor_redirects(
    manifest: Manifest,
    original_root: str,
    workspace_root: str,
) -> int:
    """Rewrite relative directory replaces so they work from `workspace_root`

    Replaces with absolute directories or module targets are left alone; they are
    assumed to resolve identically from the workspace.

    :return: The number of rewritten replaces.
    """
    count = 0
    for redirect in iter_directory_redirects(manifest):
        if os.path.isabs(redirect.new.path):
            continue
        target = os.path.normpath(os.path.join(original_root, redirect.new.path))
        redirect.new = ModuleVersion(workspace_location(workspace_root, target))
        count += 1
    return count


def _read_bytes(path: str) -> bytes:
    try:
        with open(path, "rb") as fd:
            return fd.read()
    except OSError as e:
        raise FilesystemError(f"Could not read {path}: {e.strerror}") from e


def _adopt_manifest(
    workspace: Workspace,
    manifest_path: str,
    identity: str,
) -> BaseManifest:
    manifest = parse_manifest(_read_bytes(manifest_path), manifest_path)
    original_identity = manifest.module
    if not original_identity:
        raise ManifestParseError(f"{manifest_path}: no module statement")
    base = BaseManifest(
        manifest_path=manifest_path,
        original_identity=original_identity,
        workspace_identity=identity,
    )
    manifest.module = identity
    count = reanchor_redirects(manifest, base.root_dir, workspace.root_dir)
    if count:
        _info(f"Re-anchored {count} relative replace directive(s) from {manifest_path}")
    workspace.write_manifest(manifest)

    if os.path.isfile(base.lock_path):
        try:
            shutil.copyfile(base.lock_path, workspace.lock_path)
        except OSError as e:
            raise FilesystemError(
                f"Could not copy {base.lock_path} to {workspace.lock_path}: {e.strerror}"
            ) from e
    return base


def build_manifest(
    workspace: Workspace,
    explicit_references: Sequence[str],
) -> Optional[BaseManifest]:
    """Create the workspace go.mod

    The go.mod governing the caller's working directory is copied under a new module
    name when there is one; otherwise an empty one is created.  Identifier references
    are then fetched and the original module is redirected to its source tree so
    references into it keep working.  Materializing the original module later
    replaces that redirect.

    :return: The copied go.mod or None if there was none.
    """
    toolchain = workspace.toolchain
    identity = generate_identity()
    current = toolchain.current_manifest_location(workspace.context.working_dir)

    base: Optional[BaseManifest] = None
    if current is not None:
        _info(f"Using {current} as the base go.mod (module renamed to {identity})")
        base = _adopt_manifest(workspace, current, identity)
    else:
        _info(f"No go.mod governs {workspace.context.working_dir}; creating {identity}")
        toolchain.init_manifest(workspace.root_dir, identity)
    workspace.base = base

    # Locations are translated afterwards, not fetched
    identifiers = [r for r in explicit_references if not is_location_reference(r)]
    if identifiers:
        toolchain.fetch(workspace.root_dir, identifiers)

    if base is not None:
        add_requirement(workspace, base.original_identity, PLACEHOLDER_VERSION)
        add_redirect(
            workspace, base.original_identity, base.root_dir, supersedable=True
        )
    return base
