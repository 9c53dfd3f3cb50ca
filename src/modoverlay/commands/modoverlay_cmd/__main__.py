#!/usr/bin/python3 -B
import argparse
import os
import sys
import textwrap
import traceback
from typing import (
    List,
    Optional,
    NoReturn,
    Sequence,
    Tuple,
)

from modoverlay.commands.modoverlay_cmd.context import (
    ROOT_COMMAND,
    CommandArg,
)
from modoverlay.exceptions import ModOverlayRuntimeError
from modoverlay.version import __version__
from modoverlay.util import (
    _error,
    _warn,
    ColorizedArgumentParser,
    setup_logging,
    program_name,
)


def _add_common_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-C",
        "--directory",
        dest="working_dir",
        action="store",
        default=None,
        metavar="DIR",
        help="Resolve relative entries and look for go.mod from DIR (default: the current directory)",
    )

    parser.add_argument(
        "--go",
        dest="go_binary",
        action="store",
        default=None,
        metavar="BINARY",
        help="The go command to use (default: $MODOVERLAY_GO or go)",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        dest="verbose",
        action="store_true",
        default=False,
        help="Show the go commands being run and enable debug logging",
    )

    parser.add_argument(
        "-d",
        "--debug",
        dest="debug_mode",
        action="store_true",
        default=False,
        help="Enable debug logging and raw stack traces on errors",
    )


def _split_argv(argv: Sequence[str]) -> Tuple[List[str], List[str]]:
    try:
        i = argv.index("--")
    except ValueError:
        return list(argv), []
    return list(argv[:i]), list(argv[i + 1 :])


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    description = textwrap.dedent(
        """\
    The `modoverlay` program runs go commands against a dependency graph where
    selected files of selected modules have been replaced.

    Neither the module cache nor the current module are modified. Each affected
    module is copied into a temporary workspace, which is redirected to the copy
    via its go.mod before the replacement files are written.
    """
    )

    parser: argparse.ArgumentParser = ColorizedArgumentParser(
        description=description,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        allow_abbrev=False,
        prog=program_name(),
    )

    parser.add_argument("--version", action="version", version=__version__)

    _add_common_args(parser)
    from modoverlay.commands.modoverlay_cmd.overlay_cmds import (
        ensure_overlay_commands_are_loaded,
    )

    ensure_overlay_commands_are_loaded()

    ROOT_COMMAND.configure(parser)

    if argv is None:
        argv = sys.argv[1:]
    own_args, go_args = _split_argv(argv)
    parsed_args: argparse.Namespace = parser.parse_args(own_args)

    setattr(parsed_args, "go_args", go_args)
    return parsed_args


def main(argv: Optional[Sequence[str]] = None) -> None:
    setup_logging(reconfigure_logging=True)
    parsed_args = parse_args(argv)
    if parsed_args.working_dir is not None and not os.path.isdir(
        parsed_args.working_dir
    ):
        _error(f'The directory "{parsed_args.working_dir}" does not exist')
    try:
        ROOT_COMMAND(CommandArg(parsed_args))
    except ModOverlayRuntimeError as e:
        if parsed_args.debug_mode:
            _warn(
                "Re-raising original exception to show the full stack trace due to debug mode being active"
            )
            raise e
        _error(e.message)
    except AssertionError as e:
        _error_w_stack_trace(
            "Internal error in modoverlay",
            str(e),
            e,
            parsed_args.debug_mode,
        )
    except Exception as e:
        _error_w_stack_trace(
            "Unhandled exception (Re-run with --debug to see the raw stack trace)",
            str(e),
            e,
            parsed_args.debug_mode,
        )


def _error_w_stack_trace(
    warning: str,
    error_msg: str,
    stacktrace: BaseException,
    debug_mode: bool,
) -> "NoReturn":
    if debug_mode:
        _warn(
            "Re-raising original exception to show the full stack trace due to debug mode being active"
        )
        raise stacktrace
    _warn(warning)
    _warn("  ----- 8< ---- BEGIN STACK TRACE ---- 8< -----")
    traceback.print_exception(stacktrace)
    _warn("  ----- 8< ---- END STACK TRACE ---- 8< -----")
    _warn("Please file a bug against modoverlay with the full output.")
    _error(error_msg)


if __name__ == "__main__":
    main()
