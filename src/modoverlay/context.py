import dataclasses
import os
from typing import Mapping, Optional


DEFAULT_GO_BINARY = "go"


@dataclasses.dataclass(slots=True, frozen=True)
class OverlayContext:
    """Explicit inputs that would otherwise be read from the process state

    :param working_dir: The (absolute) directory that relative references and the
      probe for a governing `go.mod` are resolved against.
    :param go_binary: The `go` command to invoke.
    :param temp_dir: Where to allocate workspaces (None means the system default).
    :param env: The environment passed to the `go` command (None means inherit).
    """

    working_dir: str
    go_binary: str = DEFAULT_GO_BINARY
    temp_dir: Optional[str] = None
    env: Optional[Mapping[str, str]] = None

    def __post_init__(self) -> None:
        if not os.path.isabs(self.working_dir):
            raise ValueError(
                f'The working directory must be absolute, got "{self.working_dir}"'
            )

    @classmethod
    def from_environ(
        cls,
        *,
        working_dir: Optional[str] = None,
        go_binary: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "OverlayContext":
        if environ is None:
            environ = os.environ
        if working_dir is None:
            working_dir = os.getcwd()
        if go_binary is None:
            go_binary = environ.get("MODOVERLAY_GO") or DEFAULT_GO_BINARY
        temp_dir = environ.get("MODOVERLAY_TMPDIR") or None
        return cls(
            working_dir=os.path.abspath(working_dir),
            go_binary=go_binary,
            temp_dir=temp_dir,
            env=dict(environ),
        )

    def with_working_dir(self, working_dir: str) -> "OverlayContext":
        return dataclasses.replace(
            self,
            working_dir=os.path.normpath(os.path.join(self.working_dir, working_dir)),
        )
