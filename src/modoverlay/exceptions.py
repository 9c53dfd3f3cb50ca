from typing import cast, Optional, Sequence


class ModOverlayRuntimeError(RuntimeError):
    # Set by `create_environment` once the workspace directory has been allocated
    workspace_root: Optional[str] = None

    @property
    def message(self) -> str:
        return cast("str", self.args[0])


class ExternalCommandFailure(ModOverlayRuntimeError):
    def __init__(
        self,
        message: str,
        command: Sequence[str],
        returncode: Optional[int],
        stderr: str,
    ) -> None:
        super().__init__(message, tuple(command), returncode, stderr)

    @property
    def command(self) -> Sequence[str]:
        return cast("Sequence[str]", self.args[1])

    @property
    def returncode(self) -> Optional[int]:
        return cast("Optional[int]", self.args[2])

    @property
    def stderr(self) -> str:
        return cast("str", self.args[3])


class ManifestParseError(ModOverlayRuntimeError):
    pass


class LayoutConflict(ModOverlayRuntimeError):
    pass


class RedirectConflict(LayoutConflict):
    pass


class ResolutionError(ModOverlayRuntimeError):
    pass


class FilesystemError(ModOverlayRuntimeError):
    pass


class InvalidOverrideFileError(ModOverlayRuntimeError):
    pass
