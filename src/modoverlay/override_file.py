import dataclasses
import os
from typing import Any, List, Mapping

from modoverlay.exceptions import InvalidOverrideFileError
from modoverlay.overlay import OverrideItem
from modoverlay.yaml import OVERRIDES_YAML, YAMLError

_TOP_LEVEL_KEYS = frozenset({"entries", "overrides"})
_ITEM_KEYS = frozenset({"package", "path", "content", "source"})


@dataclasses.dataclass(slots=True, frozen=True)
class OverrideFile:
    entries: List[str]
    overrides: List[OverrideItem]


def _read_source(source: str, base_dir: str, where: str) -> bytes:
    path = os.path.join(base_dir, source)
    try:
        with open(path, "rb") as fd:
            return fd.read()
    except OSError as e:
        raise InvalidOverrideFileError(
            f"{where}: cannot read source {path}: {e.strerror}"
        ) from e


def _parse_item(
    raw: Any,
    base_dir: str,
    where: str,
) -> OverrideItem:
    if not isinstance(raw, Mapping):
        raise InvalidOverrideFileError(f"{where}: must be a mapping")
    unknown = set(raw) - _ITEM_KEYS
    if unknown:
        names = ", ".join(sorted(str(k) for k in unknown))
        raise InvalidOverrideFileError(f"{where}: unknown key(s): {names}")
    package = raw.get("package")
    path = raw.get("path")
    if not isinstance(package, str) or not package:
        raise InvalidOverrideFileError(f'{where}: "package" must be a non-empty string')
    if not isinstance(path, str) or not path:
        raise InvalidOverrideFileError(f'{where}: "path" must be a non-empty string')

    has_content = "content" in raw
    has_source = "source" in raw
    if has_content == has_source:
        raise InvalidOverrideFileError(
            f'{where}: exactly one of "content" or "source" must be given'
        )
    if has_content:
        content = raw["content"]
        if not isinstance(content, str):
            raise InvalidOverrideFileError(f'{where}: "content" must be a string')
        data = content.encode("utf-8")
    else:
        source = raw["source"]
        if not isinstance(source, str) or not source:
            raise InvalidOverrideFileError(
                f'{where}: "source" must be a non-empty string'
            )
        data = _read_source(source, base_dir, where)
    return OverrideItem(package, path, data)


def load_override_file(path: str) -> OverrideFile:
    try:
        with open(path, "rt", encoding="utf-8") as fd:
            data = OVERRIDES_YAML.load(fd)
    except YAMLError as e:
        raise InvalidOverrideFileError(f"{path}: invalid YAML: {e}") from e
    except OSError as e:
        raise InvalidOverrideFileError(f"Cannot read {path}: {e.strerror}") from e

    if data is None:
        return OverrideFile([], [])
    if not isinstance(data, Mapping):
        raise InvalidOverrideFileError(f"{path}: the top level must be a mapping")
    unknown = set(data) - _TOP_LEVEL_KEYS
    if unknown:
        names = ", ".join(sorted(str(k) for k in unknown))
        raise InvalidOverrideFileError(f"{path}: unknown key(s): {names}")

    entries = data.get("entries")
    if entries is None:
        entries = []
    if not isinstance(entries, list) or not all(
        isinstance(e, str) and e for e in entries
    ):
        raise InvalidOverrideFileError(
            f'{path}: "entries" must be a list of non-empty strings'
        )
    raw_overrides = data.get("overrides")
    if raw_overrides is None:
        raw_overrides = []
    if not isinstance(raw_overrides, list):
        raise InvalidOverrideFileError(f'{path}: "overrides" must be a list')

    base_dir = os.path.dirname(os.path.abspath(path))
    overrides = [
        _parse_item(raw, base_dir, f"{path}: overrides[{idx}]")
        for idx, raw in enumerate(raw_overrides)
    ]
    return OverrideFile([str(e) for e in entries], overrides)


def parse_override_arg(value: str, working_dir: str) -> OverrideItem:
    """Parse a MODULE:PATH=FILE command line argument

    FILE is read relative to `working_dir`.
    """
    package, sep, rest = value.partition(":")
    path, sep2, source = rest.partition("=")
    if not sep or not sep2 or not package or not path or not source:
        raise InvalidOverrideFileError(
            f'Invalid override "{value}": expected MODULE:PATH=FILE'
        )
    return OverrideItem(
        package, path, _read_source(source, working_dir, f'Override "{value}"')
    )
