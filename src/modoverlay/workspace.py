import dataclasses
import os
import tempfile
from typing import Dict, FrozenSet, Optional, Set

from modoverlay.context import OverlayContext
from modoverlay.exceptions import FilesystemError
from modoverlay.gomod import Manifest, format_manifest, parse_manifest
from modoverlay.toolchain import Toolchain

MANIFEST_NAME = "go.mod"
LOCK_NAME = "go.sum"
OVERLAY_DIR_NAME = "overlay"


@dataclasses.dataclass(slots=True, frozen=True)
class BaseManifest:
    """The go.mod governing the caller's working directory, copied into a workspace"""

    manifest_path: str
    original_identity: str
    workspace_identity: str

    @property
    def root_dir(self) -> str:
        return os.path.dirname(self.manifest_path)

    @property
    def lock_path(self) -> str:
        return os.path.join(self.root_dir, LOCK_NAME)


@dataclasses.dataclass(slots=True)
class Workspace:
    root_dir: str
    context: OverlayContext
    toolchain: Toolchain
    base: Optional[BaseManifest] = None
    # package id -> its private, writable tree inside `overlay_dir`
    materialized: Dict[str, str] = dataclasses.field(default_factory=dict)
    # package id -> redirect target as written in the workspace go.mod
    redirects: Dict[str, str] = dataclasses.field(default_factory=dict)
    # packages whose redirect a materialized tree may still replace
    supersedable_redirects: Set[str] = dataclasses.field(default_factory=set)

    @classmethod
    def allocate(cls, context: OverlayContext, toolchain: Toolchain) -> "Workspace":
        try:
            root_dir = tempfile.mkdtemp(prefix="modoverlay-", dir=context.temp_dir)
        except OSError as e:
            raise FilesystemError(
                f"Could not allocate a workspace directory: {e.strerror}"
            ) from e
        return cls(os.path.realpath(root_dir), context, toolchain)

    @property
    def manifest_path(self) -> str:
        return os.path.join(self.root_dir, MANIFEST_NAME)

    @property
    def lock_path(self) -> str:
        return os.path.join(self.root_dir, LOCK_NAME)

    @property
    def overlay_dir(self) -> str:
        return os.path.join(self.root_dir, OVERLAY_DIR_NAME)

    @property
    def visited_packages(self) -> FrozenSet[str]:
        return frozenset(self.materialized)

    def read_manifest(self) -> Manifest:
        try:
            with open(self.manifest_path, "rb") as fd:
                content = fd.read()
        except OSError as e:
            raise FilesystemError(
                f"Could not read {self.manifest_path}: {e.strerror}"
            ) from e
        return parse_manifest(content, self.manifest_path)

    def write_manifest(self, manifest: Manifest) -> None:
        try:
            with open(self.manifest_path, "wb") as fd:
                fd.write(format_manifest(manifest))
        except OSError as e:
            raise FilesystemError(
                f"Could not write {self.manifest_path}: {e.strerror}"
            ) from e
