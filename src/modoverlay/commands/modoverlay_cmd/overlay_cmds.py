import argparse
import json
import shutil
import sys

from modoverlay.commands.modoverlay_cmd.context import (
    ROOT_COMMAND,
    CommandContext,
    add_arg,
)
from modoverlay.environment import create_environment, overlay_environment
from modoverlay.exceptions import ModOverlayRuntimeError
from modoverlay.util import _error, _info, _warn


def ensure_overlay_commands_are_loaded() -> None:
    # Loading the module is enough to register the commands
    assert ROOT_COMMAND.has_command("create")
    assert ROOT_COMMAND.has_command("run")


def _add_override_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--override",
        dest="overrides",
        action="append",
        default=[],
        metavar="MODULE:PATH=FILE",
        help="Replace PATH (relative to the root of MODULE) with the content of FILE."
        " Can be used multiple times",
    )
    parser.add_argument(
        "--overrides-file",
        dest="overrides_file",
        action="store",
        default=None,
        metavar="YAML",
        help="Read entries and overrides from a YAML file",
    )
    parser.add_argument(
        "entries",
        nargs="*",
        metavar="ENTRY",
        help="Import paths or directories that go commands will be run on"
        " (default: the current package)",
    )


@ROOT_COMMAND.register_subcommand(
    "create",
    help_description="Provision a workspace and print its directory and the translated entries",
    log_only_to_stderr=True,
    argparser=[
        _add_override_args,
        add_arg(
            "--json",
            dest="json_output",
            action="store_true",
            default=False,
            help="Print the result as a JSON object",
        ),
    ],
)
def _create(context: CommandContext) -> None:
    parsed_args = context.parsed_args
    if parsed_args.go_args:
        _error('The "create" command does not accept arguments after "--"')
    try:
        root_dir, entries = create_environment(
            context.entries(),
            context.overrides(),
            context=context.overlay_context,
            toolchain=context.toolchain(),
        )
    except ModOverlayRuntimeError as e:
        if e.workspace_root is not None:
            shutil.rmtree(e.workspace_root, ignore_errors=True)
        raise

    if parsed_args.json_output:
        json.dump({"workspace": root_dir, "entries": entries}, sys.stdout, indent=2)
        print()
    else:
        print(root_dir)
        for entry in entries:
            print(entry)


@ROOT_COMMAND.register_subcommand(
    "run",
    help_description='Provision a workspace and "go run" the entries inside it',
    log_only_to_stderr=True,
    argparser=[
        _add_override_args,
        add_arg(
            "--keep",
            dest="keep_workspace",
            action="store_true",
            default=False,
            help="Do not remove the workspace afterwards",
        ),
    ],
)
def _run(context: CommandContext) -> None:
    parsed_args = context.parsed_args
    toolchain = context.toolchain()
    if parsed_args.keep_workspace:
        root_dir, entries = create_environment(
            context.entries(),
            context.overrides(),
            context=context.overlay_context,
            toolchain=toolchain,
        )
        _info(f"The workspace {root_dir} will be kept")
        sys.exit(toolchain.run(root_dir, ["run", *entries, *parsed_args.go_args]))

    with overlay_environment(
        context.entries(),
        context.overrides(),
        context=context.overlay_context,
        toolchain=toolchain,
    ) as (root_dir, entries):
        returncode = toolchain.run(root_dir, ["run", *entries, *parsed_args.go_args])
    if returncode != 0:
        _warn(f"go run exited with status {returncode}")
    sys.exit(returncode)
