import contextlib
import shutil
from datetime import datetime
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

from modoverlay.context import OverlayContext
from modoverlay.exceptions import ModOverlayRuntimeError
from modoverlay.manifest_builder import build_manifest
from modoverlay.overlay import OverrideItem, apply_overrides
from modoverlay.references import CURRENT_PACKAGE, resolve_for_workspace
from modoverlay.toolchain import GoToolchain, Toolchain
from modoverlay.util import _info
from modoverlay.workspace import Workspace


def provision_workspace(
    entry_references: Sequence[str],
    overrides: Iterable[OverrideItem],
    *,
    context: Optional[OverlayContext] = None,
    toolchain: Optional[Toolchain] = None,
) -> Tuple[Workspace, List[str]]:
    """Like `create_environment` but returns the `Workspace` itself"""
    if context is None:
        context = OverlayContext.from_environ()
    if toolchain is None:
        toolchain = GoToolchain.from_context(context)
    workspace = Workspace.allocate(context, toolchain)
    start_time = datetime.now()
    _info(f"Provisioning workspace {workspace.root_dir}")
    try:
        build_manifest(workspace, entry_references)
        apply_overrides(workspace, overrides)
        entries = list(entry_references) or [CURRENT_PACKAGE]
        resolved = [resolve_for_workspace(workspace, ref) for ref in entries]
    except ModOverlayRuntimeError as e:
        e.workspace_root = workspace.root_dir
        raise
    end_time = datetime.now()
    _info(f"Workspace {workspace.root_dir} is ready, took: {end_time - start_time}")
    return workspace, resolved


def create_environment(
    entry_references: Sequence[str],
    overrides: Iterable[OverrideItem],
    *,
    context: Optional[OverlayContext] = None,
    toolchain: Optional[Toolchain] = None,
) -> Tuple[str, List[str]]:
    """Create a workspace where `go` commands see the overridden module files

    The caller's go.mod (if any) is copied under a new module name, every module
    named in `overrides` is materialized inside the workspace and redirected there,
    and the override contents are written on top.  Neither the module cache nor the
    caller's files are modified.

    The workspace is never removed by this function, also not when it fails.  On
    failure, the raised `ModOverlayRuntimeError` has the directory in its
    `workspace_root` attribute.

    :param entry_references: Import paths (optionally with "@version") or
      directories to pass to `go` commands later.  Import paths are fetched into the
      workspace.  Defaults to the current package when empty.
    :param overrides: The file contents to inject.
    :param context: Working directory and `go` configuration (default: derived
      from the process).
    :param toolchain: The toolchain to drive (default: `GoToolchain`).
    :return: The workspace directory and the entry references translated so they
      can be passed to `go` commands run inside the workspace.
    """
    workspace, resolved = provision_workspace(
        entry_references,
        overrides,
        context=context,
        toolchain=toolchain,
    )
    return workspace.root_dir, resolved


@contextlib.contextmanager
def overlay_environment(
    entry_references: Sequence[str],
    overrides: Iterable[OverrideItem],
    *,
    context: Optional[OverlayContext] = None,
    toolchain: Optional[Toolchain] = None,
) -> Iterator[Tuple[str, List[str]]]:
    """`create_environment` that removes the workspace again when leaving the block"""
    try:
        root_dir, resolved = create_environment(
            entry_references,
            overrides,
            context=context,
            toolchain=toolchain,
        )
    except ModOverlayRuntimeError as e:
        if e.workspace_root is not None:
            shutil.rmtree(e.workspace_root)
        raise
    try:
        yield root_dir, resolved
    finally:
        shutil.rmtree(root_dir)
