import dataclasses
import os
import posixpath
import re
from enum import Enum
from typing import Optional, TYPE_CHECKING

from modoverlay.exceptions import ResolutionError

if TYPE_CHECKING:
    from modoverlay.context import OverlayContext
    from modoverlay.workspace import Workspace


CURRENT_PACKAGE = "."

# Both Unix and Windows spellings count as locations
_LOCATION_PREFIXES = ("./", ".\\", "../", "..\\", "/", "\\")
_DRIVE_LETTER = re.compile(r"^[A-Za-z]:")


class ReferenceKind(Enum):
    IDENTIFIER = "identifier"
    LOCATION = "location"


@dataclasses.dataclass(slots=True, frozen=True)
class PackageReference:
    kind: ReferenceKind
    raw: str
    name: Optional[str] = None
    version: Optional[str] = None
    path: Optional[str] = None

    @property
    def is_location(self) -> bool:
        return self.kind == ReferenceKind.LOCATION

    @classmethod
    def identifier(
        cls, raw: str, name: str, version: Optional[str] = None
    ) -> "PackageReference":
        return cls(ReferenceKind.IDENTIFIER, raw, name=name, version=version)

    @classmethod
    def location(cls, raw: str, path: str) -> "PackageReference":
        return cls(ReferenceKind.LOCATION, raw, path=path)


def is_location_reference(ref: str) -> bool:
    """Whether `ref` has the shape of a filesystem path rather than an import path

    Only the syntax is considered; the file system is never consulted.

      >>> is_location_reference("./cmd/tool")
      True
      >>> is_location_reference("..")
      True
      >>> is_location_reference("C:\\\\src")
      True
      >>> is_location_reference("golang.org/x/text@v0.22.0")
      False
    """
    if ref in (".", ".."):
        return True
    if ref.startswith(_LOCATION_PREFIXES):
        return True
    return _DRIVE_LETTER.match(ref) is not None


def classify(ref: str, context: "OverlayContext") -> PackageReference:
    if not ref:
        raise ResolutionError("An empty string is not a valid package reference")
    if is_location_reference(ref):
        path = os.path.normpath(os.path.join(context.working_dir, ref))
        return PackageReference.location(ref, path)
    name, sep, version = ref.rpartition("@")
    if not sep:
        return PackageReference.identifier(ref, ref)
    if not name or not version:
        raise ResolutionError(
            f'The package reference "{ref}" has an empty name or version around "@"'
        )
    return PackageReference.identifier(ref, name, version)


def scope_location(
    absolute_path: str,
    manifest_root: str,
    identity: str,
) -> Optional[str]:
    """Express a directory as an import path below the module owning `manifest_root`

    Returns None if the directory is not inside `manifest_root`.
    """
    try:
        rel = os.path.relpath(absolute_path, manifest_root)
    except ValueError:
        # Different drives on Windows
        return None
    if rel == os.pardir or rel.startswith(os.pardir + os.sep):
        return None
    if rel == os.curdir:
        return identity
    return posixpath.join(identity, rel.replace(os.sep, "/"))


def workspace_location(workspace_root: str, target_dir: str) -> str:
    """The form of `target_dir` used for redirects inside the workspace go.mod"""
    try:
        rel = os.path.relpath(target_dir, workspace_root)
    except ValueError:
        return os.path.abspath(target_dir)
    if rel == os.pardir or rel.startswith(os.pardir + os.sep):
        return rel
    return os.curdir + os.sep + rel


def resolve_for_workspace(
    workspace: "Workspace",
    ref: str,
    *,
    absolute_fallback: bool = False,
) -> str:
    """Translate a reference from the caller's context to the workspace context

    Identifiers are already meaningful everywhere and are returned as-is.  A location
    becomes an import path scoped under the module owning it, or the absolute path
    when there is no governing go.mod.

    :param workspace: The workspace the reference should be valid in.
    :param ref: The reference as the caller wrote it.
    :param absolute_fallback: If True, return the absolute path rather than failing
      when a location cannot be scoped under the owning module.
    :return: The reference to use inside the workspace.
    """
    reference = classify(ref, workspace.context)
    if not reference.is_location:
        return ref
    path = reference.path
    assert path is not None
    base = workspace.base
    if base is None:
        return path
    identity = base.original_identity
    # The manifest location reported by go has its symlinks resolved
    scoped = scope_location(
        os.path.realpath(path), os.path.realpath(base.root_dir), identity
    )
    if scoped is not None:
        return scoped
    if absolute_fallback:
        return path
    raise ResolutionError(
        f'The location "{ref}" ({path}) is outside the module {identity} rooted at {base.root_dir}'
    )
