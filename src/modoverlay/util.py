import argparse
import logging
import os
import re
import sys
from typing import (
    NoReturn,
    Optional,
    Tuple,
    Any,
)


_SPACE_RE = re.compile(r"\s")
_DOUBLE_ESCAPEES = re.compile(r'([\n`$"\\])')
_REGULAR_ESCAPEES = re.compile(r"([\s!'\"$()*+#;<>?@\[\]\\`|~])")
_ASSIGNMENT_PREFIX = re.compile(r"-{0,2}[\w.-]+=")
_DEFAULT_LOGGER: Optional[logging.Logger] = None
_STDOUT_HANDLER: Optional[logging.StreamHandler] = None
_STDERR_HANDLER: Optional[logging.StreamHandler] = None
_ECHO_COMMANDS = False


def _debug_log(msg: str) -> None:
    global _DEFAULT_LOGGER
    logger = _DEFAULT_LOGGER
    if logger:
        logger.debug(msg)


def _info(msg: str) -> None:
    global _DEFAULT_LOGGER
    logger = _DEFAULT_LOGGER
    if logger:
        logger.info(msg)
    # No fallback print for info


def _error(msg: str, *, prog: Optional[str] = None) -> "NoReturn":
    global _DEFAULT_LOGGER
    logger = _DEFAULT_LOGGER
    if logger:
        logger.error(msg)
    else:
        me = os.path.basename(sys.argv[0]) if prog is None else prog
        print(
            f"{me}: error: {msg}",
            file=sys.stderr,
        )
    sys.exit(1)


def _warn(msg: str, *, prog: Optional[str] = None) -> None:
    global _DEFAULT_LOGGER
    logger = _DEFAULT_LOGGER
    if logger:
        logger.warning(msg)
    else:
        me = os.path.basename(sys.argv[0]) if prog is None else prog

        print(
            f"{me}: warning: {msg}",
            file=sys.stderr,
        )


class ColorizedArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        _error(message, prog=self.prog)


def _backslash_escape(m: re.Match[str]) -> str:
    return "\\" + m.group(0)


def _escape_shell_word(w: str) -> str:
    if _SPACE_RE.search(w):
        # Keep "--opt=" outside the quotes
        m = _ASSIGNMENT_PREFIX.match(w)
        prefix = m.group(0) if m else ""
        w = _DOUBLE_ESCAPEES.sub(_backslash_escape, w[len(prefix) :])
        return f'{prefix}"{w}"'
    return _REGULAR_ESCAPEES.sub(_backslash_escape, w)


def escape_shell(*args: str) -> str:
    return " ".join(_escape_shell_word(w) for w in args)


def enable_command_echo(enabled: bool = True) -> None:
    global _ECHO_COMMANDS
    _ECHO_COMMANDS = enabled


def print_command(*args: str, cwd: Optional[str] = None) -> None:
    if not _ECHO_COMMANDS:
        return
    # stdout carries the output of `create`
    if cwd is not None:
        print(
            f"   (cd {escape_shell(cwd)} && {escape_shell(*args)})",
            file=sys.stderr,
        )
    else:
        print(f"   {escape_shell(*args)}", file=sys.stderr)


def _check_color() -> Tuple[bool, bool, Optional[str]]:
    default = "never" if "NO_COLOR" in os.environ else "auto"
    requested_color = os.environ.get("MODOVERLAY_COLORS", default)
    bad_request = None
    if requested_color not in {"auto", "always", "never"}:
        bad_request = requested_color
        requested_color = "auto"

    if requested_color == "auto":
        stdout_color = sys.stdout.isatty()
        stderr_color = sys.stderr.isatty()
    else:
        enable = requested_color == "always"
        stdout_color = enable
        stderr_color = enable
    return stdout_color, stderr_color, bad_request


def program_name() -> str:
    name = os.path.basename(sys.argv[0])
    if name.endswith(".py"):
        name = name[:-3]
    if name == "__main__":
        name = os.path.basename(os.path.dirname(sys.argv[0]))
    if name == "modoverlay_cmd":
        name = "modoverlay"
    return name


def change_log_level(
    log_level: int,
) -> None:
    if _DEFAULT_LOGGER is not None:
        _DEFAULT_LOGGER.setLevel(log_level)
    logging.getLogger("").setLevel(log_level)


_LOGGING_SET_UP = False


def setup_logging(
    *, log_only_to_stderr: bool = False, reconfigure_logging: bool = False
) -> None:
    global _LOGGING_SET_UP, _DEFAULT_LOGGER, _STDOUT_HANDLER, _STDERR_HANDLER
    if _LOGGING_SET_UP and not reconfigure_logging:
        raise RuntimeError(
            "Logging has already been configured."
            " Use reconfigure_logging=True if you need to reconfigure it"
        )
    stdout_color, stderr_color, bad_request = _check_color()

    if log_only_to_stderr:
        stdout = sys.stderr
        stdout_color = stderr_color
    else:
        stdout = sys.stdout

    class LogLevelFilter(logging.Filter):
        def __init__(self, threshold: int, above: bool):
            super().__init__()
            self.threshold = threshold
            self.above = above

        def filter(self, record: logging.LogRecord) -> bool:
            if self.above:
                return record.levelno >= self.threshold
            else:
                return record.levelno < self.threshold

    color_format = (
        "{bold}{name}{reset}: {bold}{log_color}{levelnamelower}{reset}: {message}"
    )
    colorless_format = "{name}: {levelnamelower}: {message}"

    logger = logging.getLogger()
    if _STDOUT_HANDLER is not None:
        logger.removeHandler(_STDOUT_HANDLER)
    if _STDERR_HANDLER is not None:
        logger.removeHandler(_STDERR_HANDLER)

    stdout_handler = _stream_handler(stdout, stdout_color, color_format, colorless_format)
    stderr_handler = _stream_handler(
        sys.stderr, stderr_color, color_format, colorless_format
    )

    stdout_handler.addFilter(LogLevelFilter(logging.WARN, False))
    stderr_handler.addFilter(LogLevelFilter(logging.WARN, True))
    logger.addHandler(stdout_handler)
    logger.addHandler(stderr_handler)
    _STDOUT_HANDLER = stdout_handler
    _STDERR_HANDLER = stderr_handler

    name = program_name()

    if not _LOGGING_SET_UP:
        old_factory = logging.getLogRecordFactory()

        def record_factory(
            *args: Any, **kwargs: Any
        ) -> logging.LogRecord:  # pragma: no cover
            record = old_factory(*args, **kwargs)
            record.levelnamelower = record.levelname.lower()
            return record

        logging.setLogRecordFactory(record_factory)

    logging.getLogger().setLevel(logging.INFO)
    _DEFAULT_LOGGER = logging.getLogger(name)

    if bad_request:
        _DEFAULT_LOGGER.warning(
            f'Invalid color request for "{bad_request}" in MODOVERLAY_COLORS.'
            ' Resetting to "auto".'
        )

    _LOGGING_SET_UP = True


def _stream_handler(
    stream: Any,
    use_color: bool,
    color_format: str,
    colorless_format: str,
) -> logging.StreamHandler:
    if use_color:
        import colorlog

        handler: logging.StreamHandler = colorlog.StreamHandler(stream)
        handler.setFormatter(
            colorlog.ColoredFormatter(color_format, style="{", force_color=True)
        )
    else:
        handler = logging.StreamHandler(stream)
        handler.setFormatter(logging.Formatter(colorless_format, style="{"))
    return handler
