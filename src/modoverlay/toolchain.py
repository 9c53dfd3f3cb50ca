import os
import subprocess
from typing import List, Mapping, Optional, Sequence

from modoverlay.context import OverlayContext
from modoverlay.exceptions import ExternalCommandFailure
from modoverlay.util import _debug_log, escape_shell, print_command


# What `go list -m -f {{.GoMod}}` prints when GO111MODULE=on and no go.mod exists
_NO_GO_MOD = (os.devnull, "")


class Toolchain:
    """The operations provided by the external module toolchain

    All directories are absolute.  Every method except `current_manifest_location`
    raises `ExternalCommandFailure` when the underlying command fails.
    """

    __slots__ = ()

    def init_manifest(self, directory: str, identity: str) -> None:
        raise NotImplementedError

    def current_manifest_location(self, directory: str) -> Optional[str]:
        """Path of the manifest governing `directory` or None if there is none

        This is a best-effort probe and must not raise for a missing manifest.
        """
        raise NotImplementedError

    def fetch(self, directory: str, references: Sequence[str]) -> None:
        raise NotImplementedError

    def locate(self, directory: str, package_id: str) -> str:
        raise NotImplementedError

    def edit_redirect(self, directory: str, old: str, new: str) -> None:
        raise NotImplementedError

    def run(self, directory: str, args: Sequence[str]) -> int:
        raise NotImplementedError


class GoToolchain(Toolchain):
    __slots__ = ("_go_binary", "_env")

    def __init__(
        self,
        go_binary: str = "go",
        env: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._go_binary = go_binary
        self._env = dict(env) if env is not None else None

    @classmethod
    def from_context(cls, context: OverlayContext) -> "GoToolchain":
        return cls(go_binary=context.go_binary, env=context.env)

    def _cmd(self, *args: str) -> List[str]:
        return [self._go_binary, *args]

    def _run_checked(self, cmd: List[str], directory: str) -> str:
        print_command(*cmd, cwd=directory)
        try:
            res = subprocess.run(
                cmd,
                cwd=directory,
                env=self._env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            raise ExternalCommandFailure(
                f"Could not run {escape_shell(*cmd)}: {e.strerror}",
                cmd,
                None,
                "",
            ) from e
        stderr = res.stderr.decode("utf-8", errors="replace")
        if res.returncode != 0:
            raise ExternalCommandFailure(
                f"The command {escape_shell(*cmd)} failed with exit code {res.returncode}"
                f" (in {directory}):\n{stderr}".rstrip("\n"),
                cmd,
                res.returncode,
                stderr,
            )
        return res.stdout.decode("utf-8").strip()

    def init_manifest(self, directory: str, identity: str) -> None:
        self._run_checked(self._cmd("mod", "init", identity), directory)

    def current_manifest_location(self, directory: str) -> Optional[str]:
        try:
            go_mod = self._run_checked(
                self._cmd("list", "-m", "-f", "{{.GoMod}}"), directory
            )
        except ExternalCommandFailure as e:
            # Not being inside a module is not an error
            _debug_log(f"No governing go.mod for {directory}: {e.message}")
            return None
        if go_mod in _NO_GO_MOD:
            return None
        return go_mod

    def fetch(self, directory: str, references: Sequence[str]) -> None:
        if not references:
            return
        self._run_checked(self._cmd("get", *references), directory)

    def locate(self, directory: str, package_id: str) -> str:
        location = self._run_checked(
            self._cmd("list", "-m", "-f", "{{.Dir}}", package_id), directory
        )
        if not location:
            cmd = self._cmd("list", "-m", "-f", "{{.Dir}}", package_id)
            raise ExternalCommandFailure(
                f"The command {escape_shell(*cmd)} did not report a source directory"
                f" for {package_id} (in {directory})",
                cmd,
                0,
                "",
            )
        return location

    def edit_redirect(self, directory: str, old: str, new: str) -> None:
        self._run_checked(self._cmd("mod", "edit", f"-replace={old}={new}"), directory)

    def run(self, directory: str, args: Sequence[str]) -> int:
        cmd = self._cmd(*args)
        print_command(*cmd, cwd=directory)
        try:
            return subprocess.run(cmd, cwd=directory, env=self._env).returncode
        except OSError as e:
            raise ExternalCommandFailure(
                f"Could not run {escape_shell(*cmd)}: {e.strerror}",
                cmd,
                None,
                "",
            ) from e
