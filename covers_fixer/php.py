"""PHP source adapter.

Usage:
    sites  = scan(source)                       # one ClassSite per named class
    source = apply(source, [(site, decision)])  # write Replace decisions back

The scanner is not a PHP parser. It masks comments, strings and heredocs
(keeping offsets and newlines intact) and then looks for the few constructs
the rules need: ``namespace`` declarations, top-level ``use`` imports,
``class`` declarations and the ``#[...]`` attribute groups in front of them.
"""

import re
from dataclasses import dataclass

from covers_fixer.errors import PhpSyntaxError
from covers_fixer.models import (
    SEPARATOR,
    AnnotationGroup,
    AnnotationUse,
    ClassDeclaration,
    ClassReference,
    RawArgument,
    Replace,
    StringLiteral,
    join_fqn,
    normalise_fqn,
    split_name,
)

_OPEN_TAGS = ("<?php", "<?=", "<?")
_HEREDOC_RE = re.compile(r"<<<[ \t]*([\"']?)([A-Za-z_][A-Za-z0-9_]*)\1\r?\n")
_TOKEN_RE = re.compile(r"#\[|[{}]|\b(?:namespace|use|class)\b", re.IGNORECASE)
_NAMESPACE_DECL_RE = re.compile(r"\s*((?:\\?[A-Za-z_][\w\\]*)?)\s*([;{])")
_CLASS_NAME_RE = re.compile(r"\s+([^\W\d]\w*)")
_MODIFIERS = ("final", "abstract", "readonly")
_USE_ALIAS_RE = re.compile(r"^(.*?)\s+as\s+(\w+)$", re.IGNORECASE)
_USE_KIND_RE = re.compile(r"(function|const)\s", re.IGNORECASE)
_NOT_A_DECLARATION = ("::", "->", "$", "new", "function")
_ATTRIBUTE_NAME_RE = re.compile(r"\s*(\\?[A-Za-z_][\w\\]*)\s*")
_NAMED_ARG_RE = re.compile(r"^([A-Za-z_]\w*)\s*:(?!:)\s*(.*)$", re.DOTALL)
_CLASS_REF_RE = re.compile(r"^(\\?[A-Za-z_][\w\\]*)\s*::\s*class$", re.IGNORECASE)
_SINGLE_QUOTED_RE = re.compile(r"^'((?:[^'\\]|\\.)*)'$", re.DOTALL)
_DOUBLE_QUOTED_RE = re.compile(r'^"((?:[^"\\$]|\\.)*)"$', re.DOTALL)
_DOUBLE_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "v": "\v", "f": "\f",
                   "e": "\x1b", "0": "\0", "\\": "\\", "$": "$", '"': '"'}
_PAIRS = {"(": ")", "[": "]", "{": "}"}
_LINE_ENDING_RE = re.compile(r"\r\n|\n|\r")


# ---------------------------------------------------------------------------
# Sites
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ClassSite:
    """A class declaration and where its attribute groups live in the source.

    ``group_spans`` are ``(start, end)`` offsets of the existing ``#[...]``
    groups; ``start`` is the offset of the declaration itself (its first
    modifier or the ``class`` keyword); ``indent`` is the whitespace before
    the first group or the declaration.
    """

    declaration: ClassDeclaration
    group_spans: tuple[tuple[int, int], ...]
    start: int
    indent: str
    line: int


# ---------------------------------------------------------------------------
# Masking
# ---------------------------------------------------------------------------

def mask(source: str) -> str:
    """Return *source* with inline HTML, comments and string contents blanked.

    The result has the same length and the same newlines, so offsets and line
    numbers carry over. String delimiters are kept.
    """
    out = list(source)
    n = len(source)

    def blank(start: int, end: int) -> None:
        for k in range(start, end):
            if out[k] != "\n":
                out[k] = " "

    i = 0
    in_php = False
    while i < n:
        if not in_php:
            found = [(source.find(tag, i), tag) for tag in _OPEN_TAGS]
            found = [(pos, tag) for pos, tag in found if pos != -1]
            if not found:
                blank(i, n)
                break
            pos, tag = min(found, key=lambda f: (f[0], -len(f[1])))
            blank(i, pos + len(tag))
            i = pos + len(tag)
            in_php = True
            continue

        ch = source[i]
        if source.startswith("?>", i):
            blank(i, i + 2)
            i += 2
            in_php = False
        elif source.startswith("#[", i):
            i += 2
        elif ch == "#" or source.startswith("//", i):
            end = i
            while end < n and source[end] != "\n" and not source.startswith("?>", end):
                end += 1
            blank(i, end)
            i = end
        elif source.startswith("/*", i):
            end = source.find("*/", i + 2)
            if end == -1:
                raise PhpSyntaxError("unterminated comment", _line_of(source, i))
            blank(i, end + 2)
            i = end + 2
        elif ch in "'\"`":
            end = _string_end(source, i)
            blank(i + 1, end - 1)
            i = end
        elif source.startswith("<<<", i):
            opener = _HEREDOC_RE.match(source, i)
            if opener is None:
                i += 3
                continue
            closer = re.compile(r"^[ \t]*" + opener.group(2) + r"\b", re.MULTILINE)
            match = closer.search(source, opener.end())
            if match is None:
                raise PhpSyntaxError("unterminated heredoc", _line_of(source, i))
            blank(i, match.end())
            i = match.end()
        else:
            i += 1

    return "".join(out)


def _string_end(source: str, start: int) -> int:
    """Return the offset just past the string literal opening at *start*."""
    quote = source[start]
    i = start + 1
    while i < len(source):
        if source[i] == "\\":
            i += 2
            continue
        if source[i] == quote:
            return i + 1
        i += 1
    raise PhpSyntaxError("unterminated string literal", _line_of(source, start))


def _line_of(source: str, offset: int) -> int:
    return source.count("\n", 0, offset) + 1


def _matching_close(masked: str, start: int, source: str) -> int:
    """Return the offset just past the bracket matching the one at *start*."""
    stack = []
    i = start
    while i < len(masked):
        ch = masked[i]
        if ch in _PAIRS:
            stack.append(_PAIRS[ch])
        elif ch in ")]}":
            if not stack or stack.pop() != ch:
                raise PhpSyntaxError(f"unexpected '{ch}'", _line_of(source, i))
            if not stack:
                return i + 1
        i += 1
    raise PhpSyntaxError(f"unclosed '{masked[start]}'", _line_of(source, start))


def _split_top_level(masked: str, start: int, end: int) -> list[tuple[int, int]]:
    """Split ``masked[start:end]`` on commas outside brackets into spans."""
    spans = []
    depth = 0
    piece_start = start
    for i in range(start, end):
        ch = masked[i]
        if ch in "([{":
            depth += 1
        elif ch in ")]}":
            depth -= 1
        elif ch == "," and depth == 0:
            spans.append((piece_start, i))
            piece_start = i + 1
    spans.append((piece_start, end))
    return [(a, b) for a, b in spans if masked[a:b].strip()]


def _skip_back_whitespace(masked: str, pos: int) -> int:
    while pos > 0 and masked[pos - 1].isspace():
        pos -= 1
    return pos


# ---------------------------------------------------------------------------
# Names
# ---------------------------------------------------------------------------

def resolve_class_name(name: str, namespace: tuple[str, ...], imports: dict[str, str]) -> str:
    """Resolve a class name as PHP does and return it root-anchored."""
    if name.startswith(SEPARATOR):
        return normalise_fqn(name)
    parts = split_name(name)
    if parts[0].lower() == "namespace":
        return join_fqn(namespace + parts[1:])
    imported = imports.get(parts[0].lower())
    if imported is not None:
        return join_fqn(split_name(imported) + parts[1:])
    return join_fqn(namespace + parts)


def _parse_use(body: str, imports: dict[str, str]) -> None:
    """Record the class imports of one ``use`` statement body into *imports*."""
    body = " ".join(body.split())
    if _USE_KIND_RE.match(body):
        return
    if "{" in body:
        prefix, _, inner = body.partition("{")
        prefix = prefix.strip().rstrip(SEPARATOR)
        items = [
            f"{prefix}{SEPARATOR}{item.strip()}"
            for item in inner.rstrip("} ").split(",")
            if item.strip() and not _USE_KIND_RE.match(item.strip())
        ]
    else:
        items = [item.strip() for item in body.split(",") if item.strip()]

    for item in items:
        match = _USE_ALIAS_RE.match(item)
        if match:
            name, alias = match.group(1), match.group(2)
        else:
            name, alias = item, split_name(item)[-1]
        imports[alias.lower()] = normalise_fqn(name)


# ---------------------------------------------------------------------------
# Attribute groups
# ---------------------------------------------------------------------------

def _parse_group(source: str, masked: str, start: int, end: int,
                 namespace: tuple[str, ...], imports: dict[str, str]) -> AnnotationGroup:
    annotations = []
    for a, b in _split_top_level(masked, start + 2, end - 1):
        match = _ATTRIBUTE_NAME_RE.match(masked, a, b)
        if match is None:
            raise PhpSyntaxError("malformed attribute", _line_of(source, a))
        kind = resolve_class_name(match.group(1), namespace, imports)
        args: list = []
        rest = match.end()
        if rest < b and masked[rest] == "(":
            close = _matching_close(masked, rest, source)
            args = [_parse_argument(source[x:y].strip(), namespace, imports)
                    for x, y in _split_top_level(masked, rest + 1, close - 1)]
        annotations.append(AnnotationUse(kind, tuple(args)))
    return AnnotationGroup(tuple(annotations), source=source[start:end])


def _parse_argument(text: str, namespace: tuple[str, ...], imports: dict[str, str]):
    named = _NAMED_ARG_RE.match(text)
    if named:
        text = named.group(2).strip()

    match = _CLASS_REF_RE.match(text)
    if match and match.group(1).lower() not in ("self", "static", "parent"):
        return ClassReference(resolve_class_name(match.group(1), namespace, imports))

    match = _SINGLE_QUOTED_RE.match(text)
    if match:
        return StringLiteral(re.sub(r"\\([\\'])", r"\1", match.group(1)))

    match = _DOUBLE_QUOTED_RE.match(text)
    if match:
        return StringLiteral(re.sub(
            r"\\(.)", lambda m: _DOUBLE_ESCAPES.get(m.group(1), m.group(0)), match.group(1)
        ))

    return RawArgument(text)


# ---------------------------------------------------------------------------
# Scanning
# ---------------------------------------------------------------------------

def scan(source: str) -> list[ClassSite]:
    """Return one ClassSite per named class declaration in *source*.

    Raises:
        PhpSyntaxError: unterminated strings/comments or unbalanced brackets.
    """
    masked = mask(source)
    sites: list[ClassSite] = []
    groups: dict[int, AnnotationGroup] = {}
    group_starts: dict[int, int] = {}

    namespace: tuple[str, ...] = ()
    imports: dict[str, str] = {}
    depth = 0
    body_depth = 0
    braced_namespace = False

    pos = 0
    while True:
        token = _TOKEN_RE.search(masked, pos)
        if token is None:
            break
        word = token.group(0).lower()
        pos = token.end()

        if word == "{":
            depth += 1
        elif word == "}":
            depth -= 1
            if depth < 0:
                raise PhpSyntaxError("unexpected '}'", _line_of(source, token.start()))
            if braced_namespace and depth == 0:
                namespace, imports, body_depth, braced_namespace = (), {}, 0, False
        elif word == "#[":
            end = _matching_close(masked, token.start() + 1, source)
            groups[end] = _parse_group(source, masked, token.start(), end, namespace, imports)
            group_starts[end] = token.start()
            pos = end
        elif word == "namespace":
            if _preceded_by(masked, token.start(), _NOT_A_DECLARATION):
                continue
            match = _NAMESPACE_DECL_RE.match(masked, pos)
            if match is None:
                continue  # namespace\Relative name
            namespace = split_name(match.group(1))
            imports = {}
            if match.group(2) == "{":
                braced_namespace = True
                body_depth = depth + 1
                pos = match.end() - 1
            else:
                body_depth = depth
                pos = match.end()
        elif word == "use":
            if depth != body_depth or _preceded_by(masked, token.start(), _NOT_A_DECLARATION):
                continue
            if masked[pos:pos + 64].lstrip().startswith("("):
                continue  # closure
            end = masked.find(";", pos)
            if end == -1:
                raise PhpSyntaxError("unterminated use statement", _line_of(source, pos))
            _parse_use(masked[pos:end], imports)
            pos = end + 1
        elif word == "class":
            if _preceded_by(masked, token.start(), _NOT_A_DECLARATION):
                continue
            match = _CLASS_NAME_RE.match(masked, pos)
            if match is None or match.group(1).lower() in ("extends", "implements"):
                continue
            sites.append(_make_site(
                source, masked, token.start(), match.group(1),
                namespace, groups, group_starts,
            ))
            pos = match.end()

    return sites


def _preceded_by(masked: str, pos: int, markers) -> bool:
    before = masked[max(0, pos - 16):pos].rstrip()
    for marker in markers:
        if before.endswith(marker):
            if marker[0].isalpha():
                cut = len(before) - len(marker)
                if cut > 0 and (before[cut - 1].isalnum() or before[cut - 1] == "_"):
                    continue
            return True
    return False


def _make_site(source, masked, keyword_pos, name, namespace, groups, group_starts) -> ClassSite:
    start = keyword_pos
    while True:
        q = _skip_back_whitespace(masked, start)
        for modifier in _MODIFIERS:
            cut = q - len(modifier)
            if masked[max(0, cut):q].lower() == modifier and not _preceded_by_word_char(masked, cut):
                start = q - len(modifier)
                break
        else:
            break

    spans: list[tuple[int, int]] = []
    found: list[AnnotationGroup] = []
    q = _skip_back_whitespace(masked, start)
    while q in groups:
        spans.insert(0, (group_starts[q], q))
        found.insert(0, groups[q])
        q = _skip_back_whitespace(masked, group_starts[q])

    first = spans[0][0] if spans else start
    line_start = source.rfind("\n", 0, first) + 1
    leading = source[line_start:first]
    indent = leading if not leading.strip() else ""

    return ClassSite(
        declaration=ClassDeclaration(name, namespace, tuple(found)),
        group_spans=tuple(spans),
        start=start,
        indent=indent,
        line=_line_of(source, keyword_pos),
    )


def _preceded_by_word_char(masked: str, pos: int) -> bool:
    return pos > 0 and (masked[pos - 1].isalnum() or masked[pos - 1] == "_")


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

def render_argument(arg) -> str:
    if isinstance(arg, ClassReference):
        return f"{arg.fqn}::class"
    if isinstance(arg, StringLiteral):
        escaped = arg.value.replace("\\", "\\\\").replace("'", "\\'")
        return f"'{escaped}'"
    return arg.text


def render_group(group: AnnotationGroup) -> str:
    """Return the ``#[...]`` text for *group*, reusing its source when it has one."""
    if group.source is not None:
        return group.source
    parts = []
    for annotation in group.annotations:
        text = annotation.kind
        if annotation.args:
            text += "(" + ", ".join(render_argument(a) for a in annotation.args) + ")"
        parts.append(text)
    return "#[" + ", ".join(parts) + "]"


def line_ending(source: str) -> str:
    """The first line ending found in *source*; LF when it has none."""
    match = _LINE_ENDING_RE.search(source)
    return match.group(0) if match else "\n"


def apply(source: str, edits) -> str:
    """Apply ``(ClassSite, Replace)`` pairs to *source* and return the new text.

    Group *i* of the decision overwrites existing group *i* when it differs;
    extra groups go after the last existing group, or in front of the
    declaration when it has none, each on its own line.
    New lines use the line ending the source already uses.
    """
    eol = line_ending(source)
    replacements: list[tuple[int, int, str]] = []
    for site, decision in edits:
        if not isinstance(decision, Replace):
            continue
        if len(decision.groups) < len(site.group_spans):
            raise ValueError(
                f"Decision for line {site.line} drops existing attribute groups"
            )
        for group, (a, b) in zip(decision.groups, site.group_spans):
            if group.source is not None and group.source == source[a:b]:
                continue
            replacements.append((a, b, render_group(group)))

        extra = decision.groups[len(site.group_spans):]
        if not extra:
            continue
        if site.group_spans:
            at = site.group_spans[-1][1]
            text = "".join(eol + site.indent + render_group(g) for g in extra)
        else:
            at = site.start
            text = "".join(render_group(g) + eol + site.indent for g in extra)
        replacements.append((at, at, text))

    for a, b, text in sorted(replacements, key=lambda r: (r[0], r[1]), reverse=True):
        source = source[:a] + text + source[b:]
    return source
