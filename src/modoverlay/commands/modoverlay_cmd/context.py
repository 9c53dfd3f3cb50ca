import argparse
import dataclasses
import logging
import os
from typing import (
    Optional,
    Sequence,
    Callable,
    Dict,
    List,
    TYPE_CHECKING,
)

from modoverlay.context import OverlayContext
from modoverlay.overlay import OverrideItem
from modoverlay.override_file import load_override_file, parse_override_arg
from modoverlay.toolchain import GoToolchain, Toolchain
from modoverlay.util import (
    setup_logging,
    change_log_level,
    enable_command_echo,
)

if TYPE_CHECKING:
    from argparse import _SubParsersAction


CommandHandler = Callable[["CommandContext"], None]
ArgparserConfigurator = Callable[[argparse.ArgumentParser], None]


def add_arg(
    *name_or_flags: str,
    **kwargs,
) -> Callable[[argparse.ArgumentParser], None]:
    def _configurator(argparser: argparse.ArgumentParser) -> None:
        argparser.add_argument(
            *name_or_flags,
            **kwargs,
        )

    return _configurator


@dataclasses.dataclass(slots=True, frozen=True)
class CommandArg:
    parsed_args: argparse.Namespace


class CommandContext:
    def __init__(self, parsed_args: argparse.Namespace) -> None:
        self.parsed_args = parsed_args
        self._overlay_context: Optional[OverlayContext] = None
        self._entries: Optional[List[str]] = None
        self._overrides: Optional[List[OverrideItem]] = None

    @property
    def overlay_context(self) -> OverlayContext:
        context = self._overlay_context
        if context is None:
            context = OverlayContext.from_environ(
                working_dir=self.parsed_args.working_dir,
                go_binary=self.parsed_args.go_binary,
            )
            self._overlay_context = context
        return context

    def toolchain(self) -> Toolchain:
        return GoToolchain.from_context(self.overlay_context)

    def _load_inputs(self) -> None:
        entries: List[str] = []
        overrides: List[OverrideItem] = []
        overrides_file = getattr(self.parsed_args, "overrides_file", None)
        if overrides_file is not None:
            path = os.path.join(self.overlay_context.working_dir, overrides_file)
            loaded = load_override_file(path)
            entries.extend(loaded.entries)
            overrides.extend(loaded.overrides)
        working_dir = self.overlay_context.working_dir
        for value in getattr(self.parsed_args, "overrides", None) or []:
            overrides.append(parse_override_arg(value, working_dir))
        entries.extend(getattr(self.parsed_args, "entries", None) or [])
        self._entries = entries
        self._overrides = overrides

    def entries(self) -> Sequence[str]:
        if self._entries is None:
            self._load_inputs()
        assert self._entries is not None
        return self._entries

    def overrides(self) -> Sequence[OverrideItem]:
        if self._overrides is None:
            self._load_inputs()
        assert self._overrides is not None
        return self._overrides


class GenericSubCommand:
    __slots__ = (
        "name",
        "help_description",
        "_handler",
        "_configurators",
        "_log_only_to_stderr",
    )

    def __init__(
        self,
        name: str,
        handler: CommandHandler,
        *,
        help_description: Optional[str] = None,
        configurators: Sequence[ArgparserConfigurator] = tuple(),
        log_only_to_stderr: bool = False,
    ) -> None:
        self.name = name
        self.help_description = help_description
        self._handler = handler
        self._configurators = configurators
        self._log_only_to_stderr = log_only_to_stderr

    def add_subcommand_to_subparser(
        self,
        subparser: "_SubParsersAction",
    ) -> argparse.ArgumentParser:
        parser = subparser.add_parser(
            self.name,
            help=self.help_description,
            allow_abbrev=False,
        )
        for configurator in self._configurators:
            configurator(parser)
        return parser

    def __call__(self, command_arg: CommandArg) -> None:
        context = CommandContext(command_arg.parsed_args)
        if self._log_only_to_stderr:
            setup_logging(reconfigure_logging=True, log_only_to_stderr=True)

        parsed_args = context.parsed_args
        if parsed_args.verbose:
            enable_command_echo()
        if (
            parsed_args.verbose
            or parsed_args.debug_mode
            or os.environ.get("MODOVERLAY_DEBUG", "") != ""
        ):
            change_log_level(logging.DEBUG)
        else:
            change_log_level(logging.INFO)
        return self._handler(context)


class DispatcherCommand:
    __slots__ = ("_subcommands", "_dest", "_metavar")

    def __init__(self, dest: str, *, metavar: str = "command") -> None:
        self._subcommands: Dict[str, GenericSubCommand] = {}
        self._dest = dest
        self._metavar = metavar

    def add_subcommand(self, subcommand: GenericSubCommand) -> None:
        if subcommand.name in self._subcommands:
            raise ValueError(
                f"Internal error: Multiple handlers for the command {subcommand.name}"
            )
        self._subcommands[subcommand.name] = subcommand

    def register_subcommand(
        self,
        name: str,
        *,
        help_description: Optional[str] = None,
        argparser: Sequence[ArgparserConfigurator] = tuple(),
        log_only_to_stderr: bool = False,
    ) -> Callable[[CommandHandler], GenericSubCommand]:
        def _annotation_impl(func: CommandHandler) -> GenericSubCommand:
            subcommand = GenericSubCommand(
                name,
                func,
                help_description=help_description,
                configurators=argparser,
                log_only_to_stderr=log_only_to_stderr,
            )
            self.add_subcommand(subcommand)
            return subcommand

        return _annotation_impl

    def configure(self, argparser: argparse.ArgumentParser) -> None:
        subparser = argparser.add_subparsers(
            dest=self._dest,
            required=True,
            metavar=self._metavar,
        )
        for subcommand in self._subcommands.values():
            subcommand.add_subcommand_to_subparser(subparser)

    def has_command(self, command: str) -> bool:
        return command in self._subcommands

    def __call__(self, command_arg: CommandArg) -> None:
        v = getattr(command_arg.parsed_args, self._dest)
        assert (
            v in self._subcommands
        ), f"Internal error: {v} was accepted as a command, but it was not registered?"
        self._subcommands[v](command_arg)


ROOT_COMMAND = DispatcherCommand("command", metavar="COMMAND")
