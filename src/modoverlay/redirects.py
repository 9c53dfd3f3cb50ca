from modoverlay.exceptions import RedirectConflict
from modoverlay.references import workspace_location
from modoverlay.util import _debug_log
from modoverlay.workspace import Workspace


def add_redirect(
    workspace: Workspace,
    package_id: str,
    target_dir: str,
    *,
    supersedable: bool = False,
) -> str:
    """Point `package_id` at `target_dir` in the workspace go.mod

    Each package gets at most one redirect per workspace.  Repeating an identical
    redirect is a no-op while a different target raises `RedirectConflict`, unless
    the existing redirect was added as `supersedable`.  In that case the new one
    replaces it in the go.mod.

    :param supersedable: If True, a later redirect of the same package may replace
      this one (once).
    :return: The target as written in the go.mod (relative to the workspace root
      when possible).
    """
    location = workspace_location(workspace.root_dir, target_dir)
    existing = workspace.redirects.get(package_id)
    if existing is not None:
        if existing == location:
            return existing
        if package_id not in workspace.supersedable_redirects:
            raise RedirectConflict(
                f"Cannot redirect {package_id} to {location}: it is already redirected to {existing}"
            )
        _debug_log(f"Redirect {package_id} => {existing} superseded by {location}")
    else:
        _debug_log(f"Redirecting {package_id} => {location}")
    workspace.toolchain.edit_redirect(workspace.root_dir, package_id, location)
    workspace.redirects[package_id] = location
    if supersedable:
        workspace.supersedable_redirects.add(package_id)
    else:
        workspace.supersedable_redirects.discard(package_id)
    return location


def add_requirement(workspace: Workspace, module: str, version: str) -> None:
    manifest = workspace.read_manifest()
    manifest.add_requirement(module, version)
    workspace.write_manifest(manifest)
