"""Reading and writing go.mod files

The model keeps what the workspace needs: the module path, go and toolchain
lines, requirements with their `// indirect` marker, replaces, and every other
directive with its trailing comment.  Formatting is normalized rather than
preserved.  In particular:

 * Comments on their own line (such as `// Deprecated:` notices or the rationale
   above a `retract`) and trailing comments on module, go, toolchain, require and
   replace lines are dropped.
 * Requirements are regrouped into one block of direct and one block of indirect
   requirements, and each other directive verb into a single block.

The files written with this are only read by the go command inside a throw-away
workspace, where none of the above changes the build.
"""

import dataclasses
import re
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from modoverlay.exceptions import ManifestParseError
from modoverlay.references import is_location_reference

BLOCK_VERBS = frozenset(
    {"require", "replace", "exclude", "retract", "godebug", "tool", "ignore"}
)
_NEEDS_QUOTING = re.compile(r'[\s"`()]|//')


@dataclasses.dataclass(slots=True, frozen=True)
class ModuleVersion:
    path: str
    version: Optional[str] = None

    def __str__(self) -> str:
        if self.version:
            return f"{self.path}@{self.version}"
        return self.path


@dataclasses.dataclass(slots=True)
class Requirement:
    module: str
    version: str
    indirect: bool = False


@dataclasses.dataclass(slots=True)
class Redirect:
    old: ModuleVersion
    new: ModuleVersion

    @property
    def is_directory_target(self) -> bool:
        return self.new.version is None and is_location_reference(self.new.path)


@dataclasses.dataclass(slots=True)
class Directive:
    verb: str
    tokens: List[str]
    comment: str = ""


@dataclasses.dataclass(slots=True)
class Manifest:
    module: Optional[str] = None
    go: Optional[str] = None
    toolchain: Optional[str] = None
    requires: List[Requirement] = dataclasses.field(default_factory=list)
    replaces: List[Redirect] = dataclasses.field(default_factory=list)
    other: List[Directive] = dataclasses.field(default_factory=list)

    def requirement_for(self, module: str) -> Optional[Requirement]:
        for r in self.requires:
            if r.module == module:
                return r
        return None

    def add_requirement(
        self, module: str, version: str, *, indirect: bool = False
    ) -> None:
        existing = self.requirement_for(module)
        if existing is not None:
            existing.version = version
            existing.indirect = indirect
            return
        self.requires.append(Requirement(module, version, indirect))

    def redirects_for(self, module: str) -> List[Redirect]:
        return [r for r in self.replaces if r.old.path == module]

    def set_redirect(
        self,
        old: ModuleVersion,
        new: ModuleVersion,
    ) -> None:
        """Add a replace, dropping the ones it supersedes

        A replace without an old version supersedes every replace of the module.
        """
        self.replaces = [
            r
            for r in self.replaces
            if r.old.path != old.path
            or (old.version is not None and r.old.version != old.version)
        ]
        self.replaces.append(Redirect(old, new))


def _unquote(
    line: str, start: int, filename: str, lineno: int
) -> Tuple[str, int]:
    quote = line[start]
    if quote == "`":
        end = line.find("`", start + 1)
        if end < 0:
            raise ManifestParseError(f"{filename}:{lineno}: unterminated raw string")
        return line[start + 1 : end], end + 1
    chars: List[str] = []
    i = start + 1
    while i < len(line):
        c = line[i]
        if c == "\\" and i + 1 < len(line):
            chars.append(line[i + 1])
            i += 2
            continue
        if c == '"':
            return "".join(chars), i + 1
        chars.append(c)
        i += 1
    raise ManifestParseError(f"{filename}:{lineno}: unterminated quoted string")


def _tokenize(line: str, filename: str, lineno: int) -> Tuple[List[str], str]:
    tokens: List[str] = []
    comment = ""
    i = 0
    n = len(line)
    while i < n:
        c = line[i]
        if c.isspace():
            i += 1
            continue
        if line.startswith("//", i):
            comment = line[i + 2 :].strip()
            break
        if c in "()":
            tokens.append(c)
            i += 1
            continue
        if c in "\"`":
            token, i = _unquote(line, i, filename, lineno)
            tokens.append(token)
            continue
        start = i
        while (
            i < n
            and not line[i].isspace()
            and line[i] not in "()\"`"
            and not line.startswith("//", i)
        ):
            i += 1
        tokens.append(line[start:i])
    return tokens, comment


def _is_indirect(comment: str) -> bool:
    return comment == "indirect" or comment.startswith("indirect;")


def _parse_redirect(args: List[str], filename: str, lineno: int) -> Redirect:
    try:
        arrow = args.index("=>")
    except ValueError:
        raise ManifestParseError(
            f'{filename}:{lineno}: replace is missing "=>"'
        ) from None
    left = args[:arrow]
    right = args[arrow + 1 :]
    if len(left) not in (1, 2) or len(right) not in (1, 2):
        raise ManifestParseError(
            f"{filename}:{lineno}: usage: replace module/path [v1.2.3] => other/module v1.4"
            " or replace module/path [v1.2.3] => ../local/directory"
        )
    old = ModuleVersion(left[0], left[1] if len(left) == 2 else None)
    new = ModuleVersion(right[0], right[1] if len(right) == 2 else None)
    if new.version is None and not is_location_reference(new.path):
        raise ManifestParseError(
            f'{filename}:{lineno}: replacement module "{new.path}" without version'
            " must be a directory path (rooted or starting with ./ or ../)"
        )
    return Redirect(old, new)


def _apply_directive(
    manifest: Manifest,
    verb: str,
    args: List[str],
    comment: str,
    filename: str,
    lineno: int,
) -> None:
    if verb in ("module", "go", "toolchain"):
        if len(args) != 1:
            raise ManifestParseError(
                f"{filename}:{lineno}: {verb} expects exactly one argument"
            )
        if getattr(manifest, verb) is not None:
            raise ManifestParseError(f"{filename}:{lineno}: repeated {verb} statement")
        setattr(manifest, verb, args[0])
    elif verb == "require":
        if len(args) != 2:
            raise ManifestParseError(
                f"{filename}:{lineno}: usage: require module/path v1.2.3"
            )
        manifest.requires.append(Requirement(args[0], args[1], _is_indirect(comment)))
    elif verb == "replace":
        manifest.replaces.append(_parse_redirect(args, filename, lineno))
    else:
        manifest.other.append(Directive(verb, args, comment))


def parse_manifest(content: bytes, filename: str = "go.mod") -> Manifest:
    try:
        text = content.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ManifestParseError(f"{filename}: not valid UTF-8: {e}") from e

    manifest = Manifest()
    block_verb: Optional[str] = None
    block_start = 0
    for lineno, line in enumerate(text.splitlines(), start=1):
        tokens, comment = _tokenize(line, filename, lineno)
        if not tokens:
            continue
        if block_verb is not None:
            if tokens == [")"]:
                block_verb = None
                continue
            if "(" in tokens or ")" in tokens:
                raise ManifestParseError(
                    f"{filename}:{lineno}: unexpected parenthesis inside {block_verb} block"
                )
            _apply_directive(
                manifest, block_verb, tokens, comment, filename, lineno
            )
            continue

        verb, args = tokens[0], tokens[1:]
        if args and args[0] == "(":
            if verb not in BLOCK_VERBS:
                raise ManifestParseError(
                    f"{filename}:{lineno}: {verb} does not support blocks"
                )
            if args == ["(", ")"]:
                continue
            if len(args) != 1:
                raise ManifestParseError(
                    f"{filename}:{lineno}: unexpected tokens after {verb} ("
                )
            block_verb = verb
            block_start = lineno
            continue
        if "(" in args or ")" in args:
            raise ManifestParseError(f"{filename}:{lineno}: unexpected parenthesis")
        _apply_directive(manifest, verb, args, comment, filename, lineno)

    if block_verb is not None:
        raise ManifestParseError(
            f"{filename}:{block_start}: {block_verb} block is never closed"
        )
    return manifest


def _quote(token: str) -> str:
    if token and not _NEEDS_QUOTING.search(token):
        return token
    escaped = token.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _line(tokens: Iterable[str], comment: str = "") -> str:
    line = " ".join(_quote(t) for t in tokens)
    if comment:
        line += f" // {comment}"
    return line


def _redirect_tokens(redirect: Redirect) -> List[str]:
    tokens = [redirect.old.path]
    if redirect.old.version:
        tokens.append(redirect.old.version)
    tokens.append("=>")
    tokens.append(redirect.new.path)
    if redirect.new.version:
        tokens.append(redirect.new.version)
    return tokens


def _section(verb: str, entries: List[Tuple[List[str], str]]) -> Iterator[str]:
    if len(entries) == 1:
        tokens, comment = entries[0]
        yield _line([verb, *tokens], comment)
        return
    yield f"{verb} ("
    for tokens, comment in entries:
        yield f"\t{_line(tokens, comment)}"
    yield ")"


def format_manifest(manifest: Manifest) -> bytes:
    sections: List[List[str]] = []
    for verb in ("module", "go", "toolchain"):
        value = getattr(manifest, verb)
        if value is not None:
            sections.append([_line([verb, value])])

    direct = [([r.module, r.version], "") for r in manifest.requires if not r.indirect]
    indirect = [
        ([r.module, r.version], "indirect") for r in manifest.requires if r.indirect
    ]
    for entries in (direct, indirect):
        if entries:
            sections.append(list(_section("require", entries)))

    others: Dict[str, List[Tuple[List[str], str]]] = {}
    for directive in manifest.other:
        others.setdefault(directive.verb, []).append(
            (directive.tokens, directive.comment)
        )
    for verb, entries in others.items():
        if verb in BLOCK_VERBS:
            sections.append(list(_section(verb, entries)))
        else:
            sections.append([_line([verb, *t], c) for t, c in entries])

    if manifest.replaces:
        sections.append(
            list(
                _section(
                    "replace", [(_redirect_tokens(r), "") for r in manifest.replaces]
                )
            )
        )

    text = "\n\n".join("\n".join(s) for s in sections)
    return (text + "\n").encode("utf-8") if text else b""


def iter_directory_redirects(manifest: Manifest) -> Iterator[Redirect]:
    return (r for r in manifest.replaces if r.is_directory_target)

