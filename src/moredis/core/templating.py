"""
Template engine for map keys, values, queries and pointer names.

Templates use double-brace actions evaluated against an associative context:
a source document for map keys and values, the run parameters for queries,
projections and pointer names. A template is compiled once into a syntax tree
with no binding to any schema, then executed per record through a generic
key lookup.

Manifesto:
    Config authors write one-line templates such as ``{{toLower .email}}``.
    Lookups are dynamic and unchecked, so a record missing a field must not
    crash a run: the lookup yields an explicit absent sentinel which renders
    as the literal ``<no value>``. The populator relies on that exact literal
    (or the empty string) to mean "skip this record for this map", so it is
    never generalised to other falsy values.

Architecture:
    ::

        compile_template(text) ──► Template (tuple of nodes)
                                    │
            _Text    literal text   │
            _Action  {{ pipeline }} │  execute(context) ──► str
            _If      {{if}}..{{else}}..{{end}}

        pipeline := command ('|' command)*
        command  := operand+            (function call when operand[0] is a function)
        operand  := '.' | .field.path | "str" | `raw` | number | true | false | nil
                  | function | '(' pipeline ')'

Features:
    - **Field paths:** ``.a.b`` descends nested mappings
    - **Pipes:** ``{{.name | toLower}}`` passes the value as the last argument
    - **Comments and trim markers:** ``{{/* note */}}``, ``{{- x -}}``
    - **Conditionals:** ``{{if .active}}...{{else}}...{{end}}``
    - **Function library:** ``toLower``, ``toString``, ``toSet``

Examples:
    >>> apply_template("user:{{toLower .name}}", {"name": "ADA"})
    'user:ada'
    >>> apply_template("{{.missing}}", {})
    '<no value>'
    >>> to_set({"a": True, "b": "false", "c": True})
    '[a,c]'

Guardrails:
    ❌ DON'T: Treat every falsy render as "missing"
    ✅ DO: Compare against ``NO_VALUE`` and ``""`` only

Tags:
    templating, text-template, field-lookup, moredis

Doc-Types:
    - API Reference
    - Config Authoring Guide
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, NamedTuple

from bson import ObjectId

from moredis.core.errors import TemplateExecutionError, TemplateSyntaxError

NO_VALUE = "<no value>"
NIL_VALUE = "<nil>"

LEFT_DELIM = "{{"
RIGHT_DELIM = "}}"

_SPACE = " \t\r\n"
_TERMINATORS = _SPACE + "|()}"

_IDENT_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_NUMBER_RE = re.compile(r"[-+]?\d+(?:\.\d*)?(?:[eE][-+]?\d+)?")


class _Missing:
    """Sentinel for a field lookup that found nothing."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "<missing>"

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()


# =============================================================================
# FUNCTION LIBRARY
# =============================================================================

_BOOL_STRINGS = {
    "1": True, "t": True, "T": True, "TRUE": True, "true": True, "True": True,
    "0": False, "f": False, "F": False, "FALSE": False, "false": False, "False": False,
}


def _format_float(value: float) -> str:
    # shortest round-trip digits; exponent form below 1e-4 and from 1e6 up
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value == 0:
        return "-0" if math.copysign(1.0, value) < 0 else "0"
    sign, digits, exponent = Decimal(repr(value)).normalize().as_tuple()
    text = "".join(map(str, digits))
    point = len(text) + exponent
    prefix = "-" if sign else ""
    magnitude = point - 1
    if magnitude < -4 or magnitude >= 6:
        mantissa = text[0] + ("." + text[1:] if len(text) > 1 else "")
        return f"{prefix}{mantissa}e{'-' if magnitude < 0 else '+'}{abs(magnitude):02d}"
    if exponent >= 0:
        return prefix + text + "0" * exponent
    if point > 0:
        return f"{prefix}{text[:point]}.{text[point:]}"
    return f"{prefix}0.{'0' * -point}{text}"


def _format_element(value: Any) -> str:
    if value is None or value is MISSING:
        return NIL_VALUE
    return format_value(value)


def format_value(value: Any) -> str:
    """
    Render a value the way an action prints it.

    Sequences print as ``[a b]`` and mappings as ``map[k1:v1 k2:v2]`` with
    sorted keys; ``None`` inside either prints as ``<nil>``.
    """
    if value is MISSING or value is None:
        return NO_VALUE
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return _format_float(value)
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, Mapping):
        items = sorted(value.items(), key=lambda item: str(item[0]))
        return "map[" + " ".join(f"{k}:{_format_element(v)}" for k, v in items) + "]"
    if isinstance(value, (list, tuple)):
        return "[" + " ".join(_format_element(v) for v in value) + "]"
    return str(value)


def to_lower(value: Any) -> str:
    """Lowercase strings; anything else renders as an empty string."""
    if isinstance(value, str):
        return value.lower()
    return ""


def to_string(value: Any) -> str:
    """
    Stringify a value.

    ObjectIds render as their 24-character hex form rather than their repr,
    which is what makes them usable as cache keys. ``None`` and missing
    fields render as ``<nil>``, which is a writable key.
    """
    if value is None or value is MISSING:
        return NIL_VALUE
    return format_value(value)


def to_set(value: Any) -> str:
    """
    Render a ``{key: bool}`` mapping as a sorted ``[k1,k2]`` set of true keys.

    Values may be booleans or boolean-like strings. If any value is neither,
    the whole result is ``""``.
    """
    if not isinstance(value, Mapping):
        return ""
    members = []
    for key, flag in value.items():
        if isinstance(flag, bool):
            enabled = flag
        elif isinstance(flag, str) and flag in _BOOL_STRINGS:
            enabled = _BOOL_STRINGS[flag]
        else:
            return ""
        if enabled:
            members.append(str(key))
    # sorted so output is deterministic regardless of document key order
    return "[" + ",".join(sorted(members)) + "]"


FUNCTIONS: dict[str, Callable[[Any], str]] = {
    "toLower": to_lower,
    "toString": to_string,
    "toSet": to_set,
}


# =============================================================================
# LEXER
# =============================================================================


class _Token(NamedTuple):
    kind: str
    value: Any
    pos: int


# token kinds
FIELD = "field"
DOT = "dot"
IDENT = "ident"
STRING = "string"
NUMBER = "number"
BOOL = "bool"
NIL = "nil"
KEYWORD = "keyword"
PIPE = "pipe"
LPAREN = "lparen"
RPAREN = "rparen"

_KEYWORDS = {"if", "else", "end"}


@dataclass(frozen=True)
class _RawText:
    text: str


@dataclass(frozen=True)
class _RawAction:
    tokens: tuple[_Token, ...]
    pos: int


class _Lexer:
    """Splits template source into literal text and tokenised actions."""

    def __init__(self, source: str, name: str):
        self.source = source
        self.name = name

    def error(self, message: str, pos: int) -> TemplateSyntaxError:
        label = self.name or "template"
        return TemplateSyntaxError(f"{label}:{pos}: {message}", template=self.source, position=pos)

    def scan(self) -> list[_RawText | _RawAction]:
        source = self.source
        items: list[_RawText | _RawAction] = []
        pos = 0
        trim_next = False
        while True:
            start = source.find(LEFT_DELIM, pos)
            text = source[pos:] if start < 0 else source[pos:start]
            if trim_next:
                text = text.lstrip(_SPACE)
            if start < 0:
                if text:
                    items.append(_RawText(text))
                return items

            inner = start + len(LEFT_DELIM)
            if source.startswith("-", inner) and inner + 1 < len(source) and source[inner + 1] in _SPACE:
                text = text.rstrip(_SPACE)
                inner += 2
            if text:
                items.append(_RawText(text))

            if source.startswith("/*", inner):
                pos, trim_next = self._skip_comment(inner, start)
                continue

            tokens, pos, trim_next = self._lex_action(inner, start)
            items.append(_RawAction(tuple(tokens), start))

    def _close_at(self, pos: int) -> tuple[int, bool] | None:
        """Return (end, trim) when a closing delimiter starts at ``pos``."""
        source = self.source
        if source.startswith(RIGHT_DELIM, pos):
            return pos + len(RIGHT_DELIM), False
        if pos < len(source) and source[pos] in _SPACE and source.startswith("-" + RIGHT_DELIM, pos + 1):
            return pos + 1 + len("-" + RIGHT_DELIM), True
        return None

    def _skip_comment(self, pos: int, start: int) -> tuple[int, bool]:
        end = self.source.find("*/", pos + 2)
        if end < 0:
            raise self.error("unclosed comment", start)
        closed = self._close_at(end + 2)
        if closed is None:
            raise self.error("comment ends before closing delimiter", start)
        return closed

    def _lex_action(self, pos: int, start: int) -> tuple[list[_Token], int, bool]:
        source = self.source
        n = len(source)
        tokens: list[_Token] = []
        i = pos
        while True:
            if i >= n:
                raise self.error("unclosed action", start)
            closed = self._close_at(i)
            if closed is not None:
                return tokens, closed[0], closed[1]

            ch = source[i]
            if ch in _SPACE:
                i += 1
            elif ch == "|":
                tokens.append(_Token(PIPE, ch, i))
                i += 1
            elif ch == "(":
                tokens.append(_Token(LPAREN, ch, i))
                i += 1
            elif ch == ")":
                tokens.append(_Token(RPAREN, ch, i))
                i += 1
            elif ch == '"':
                i = self._lex_quoted(i, tokens)
            elif ch == "`":
                end = source.find("`", i + 1)
                if end < 0:
                    raise self.error("unterminated raw quoted string", i)
                tokens.append(_Token(STRING, source[i + 1:end], i))
                i = end + 1
            elif ch == ".":
                i = self._lex_field(i, tokens)
            elif ch.isdigit() or (ch in "+-" and i + 1 < n and source[i + 1].isdigit()):
                i = self._lex_number(i, tokens)
            elif ch == "$":
                raise self.error("variables are not supported", i)
            else:
                match = _IDENT_RE.match(source, i)
                if match is None:
                    raise self.error(f"unexpected {ch!r} in command", i)
                word = match.group()
                if word in _KEYWORDS:
                    tokens.append(_Token(KEYWORD, word, i))
                elif word in ("true", "false"):
                    tokens.append(_Token(BOOL, word == "true", i))
                elif word == "nil":
                    tokens.append(_Token(NIL, None, i))
                else:
                    tokens.append(_Token(IDENT, word, i))
                i = self._expect_terminator(match.end())

    def _expect_terminator(self, i: int) -> int:
        if i < len(self.source) and self.source[i] not in _TERMINATORS:
            raise self.error(f"unexpected {self.source[i]!r} after term", i)
        return i

    def _lex_quoted(self, i: int, tokens: list[_Token]) -> int:
        source = self.source
        j = i + 1
        while True:
            if j >= len(source) or source[j] == "\n":
                raise self.error("unterminated quoted string", i)
            if source[j] == "\\":
                j += 2
                continue
            if source[j] == '"':
                break
            j += 1
        try:
            value = json.loads(source[i:j + 1])
        except ValueError as exc:
            raise self.error(f"bad quoted string {source[i:j + 1]}", i) from exc
        tokens.append(_Token(STRING, value, i))
        return self._expect_terminator(j + 1)

    def _lex_field(self, i: int, tokens: list[_Token]) -> int:
        source = self.source
        path: list[str] = []
        j = i
        while j < len(source) and source[j] == ".":
            match = _IDENT_RE.match(source, j + 1)
            if match is None:
                break
            path.append(match.group())
            j = match.end()
        if not path:
            tokens.append(_Token(DOT, ".", i))
            return self._expect_terminator(i + 1)
        tokens.append(_Token(FIELD, tuple(path), i))
        return self._expect_terminator(j)

    def _lex_number(self, i: int, tokens: list[_Token]) -> int:
        match = _NUMBER_RE.match(self.source, i)
        text = match.group()
        value: int | float = float(text) if any(c in text for c in ".eE") else int(text)
        tokens.append(_Token(NUMBER, value, i))
        end = match.end()
        if end < len(self.source) and self.source[end] not in _TERMINATORS:
            raise self.error(f"bad number syntax: {text}{self.source[end]}", i)
        return end


# =============================================================================
# PARSER
# =============================================================================


@dataclass(frozen=True)
class _Field:
    path: tuple[str, ...]


@dataclass(frozen=True)
class _Dot:
    pass


@dataclass(frozen=True)
class _Literal:
    value: Any


@dataclass(frozen=True)
class _Function:
    name: str
    func: Callable[[Any], str]


@dataclass(frozen=True)
class _Command:
    operands: tuple[Any, ...]


@dataclass(frozen=True)
class _Pipeline:
    commands: tuple[_Command, ...]


@dataclass(frozen=True)
class _Text:
    text: str


@dataclass(frozen=True)
class _Action:
    pipeline: _Pipeline
    pos: int


@dataclass(frozen=True)
class _If:
    condition: _Pipeline
    body: tuple[Any, ...]
    orelse: tuple[Any, ...]


class _Parser:
    def __init__(self, lexer: _Lexer, items: list[_RawText | _RawAction]):
        self._lexer = lexer
        self._items = items
        self._index = 0

    def parse(self) -> tuple[Any, ...]:
        nodes, terminator = self._parse_nodes()
        if terminator is not None:
            raise self._lexer.error(f"unexpected {{{{{terminator[0]}}}}}", terminator[1])
        return nodes

    def _parse_nodes(self) -> tuple[tuple[Any, ...], tuple[str, int] | None]:
        nodes: list[Any] = []
        while self._index < len(self._items):
            item = self._items[self._index]
            self._index += 1
            if isinstance(item, _RawText):
                nodes.append(_Text(item.text))
                continue

            tokens = item.tokens
            if tokens and tokens[0].kind == KEYWORD:
                keyword = tokens[0].value
                if keyword == "if":
                    nodes.append(self._parse_if(item))
                    continue
                if len(tokens) > 1:
                    raise self._lexer.error(f"unexpected {tokens[1].value!r} in {keyword}", tokens[1].pos)
                return tuple(nodes), (keyword, item.pos)

            nodes.append(_Action(self._parse_pipeline(tokens, item.pos, "command"), item.pos))
        return tuple(nodes), None

    def _parse_if(self, item: _RawAction) -> _If:
        condition = self._parse_pipeline(item.tokens[1:], item.pos, "if")
        body, terminator = self._parse_nodes()
        orelse: tuple[Any, ...] = ()
        if terminator is not None and terminator[0] == "else":
            orelse, terminator = self._parse_nodes()
        if terminator is None:
            raise self._lexer.error("unexpected EOF, missing {{end}}", item.pos)
        if terminator[0] != "end":
            raise self._lexer.error(f"unexpected {{{{{terminator[0]}}}}}", terminator[1])
        return _If(condition, body, orelse)

    def _parse_pipeline(self, tokens: tuple[_Token, ...], pos: int, context: str) -> _Pipeline:
        if not tokens:
            raise self._lexer.error(f"missing value for {context}", pos)
        stream = _TokenStream(tokens)
        pipeline = self._pipeline(stream, pos)
        if not stream.at_end():
            token = stream.peek()
            raise self._lexer.error(f"unexpected {token.value!r} in operand", token.pos)
        return pipeline

    def _pipeline(self, stream: _TokenStream, pos: int) -> _Pipeline:
        commands = [self._command(stream, pos)]
        while not stream.at_end() and stream.peek().kind == PIPE:
            pipe = stream.next()
            commands.append(self._command(stream, pipe.pos))
        self._check_stages(commands, pos)
        return _Pipeline(tuple(commands))

    def _command(self, stream: _TokenStream, pos: int) -> _Command:
        operands: list[Any] = []
        while not stream.at_end() and stream.peek().kind not in (PIPE, RPAREN):
            token = stream.next()
            if token.kind == LPAREN:
                operands.append(self._pipeline(stream, token.pos))
                if stream.at_end() or stream.next().kind != RPAREN:
                    raise self._lexer.error("unclosed left paren", token.pos)
            else:
                operands.append(self._operand(token))
            pos = token.pos
        if not operands:
            raise self._lexer.error("missing value for command", pos)
        if not isinstance(operands[0], _Function) and len(operands) > 1:
            raise self._lexer.error("can't give argument to non-function", pos)
        return _Command(tuple(operands))

    def _operand(self, token: _Token) -> Any:
        if token.kind == FIELD:
            return _Field(token.value)
        if token.kind == DOT:
            return _Dot()
        if token.kind in (STRING, NUMBER, BOOL, NIL):
            return _Literal(token.value)
        if token.kind == IDENT:
            func = FUNCTIONS.get(token.value)
            if func is None:
                raise self._lexer.error(f'function "{token.value}" not defined', token.pos)
            return _Function(token.value, func)
        raise self._lexer.error(f"unexpected {token.value!r} in operand", token.pos)

    def _check_stages(self, commands: list[_Command], pos: int) -> None:
        for index, command in enumerate(commands):
            first = command.operands[0]
            piped = 1 if index > 0 else 0
            if isinstance(first, _Function):
                given = len(command.operands) - 1 + piped
                if given != 1:
                    raise self._lexer.error(f"wrong number of args for {first.name}: want 1 got {given}", pos)
            elif piped:
                raise self._lexer.error(f"non executable command in pipeline stage {index + 1}", pos)


class _TokenStream:
    def __init__(self, tokens: tuple[_Token, ...]):
        self._tokens = tokens
        self._index = 0

    def at_end(self) -> bool:
        return self._index >= len(self._tokens)

    def peek(self) -> _Token:
        return self._tokens[self._index]

    def next(self) -> _Token:
        token = self._tokens[self._index]
        self._index += 1
        return token


# =============================================================================
# EXECUTION
# =============================================================================


def _is_true(value: Any) -> bool:
    if value is MISSING or value is None:
        return False
    return bool(value)


class Template:
    """
    A compiled template.

    Holds only the parsed syntax tree, so one instance can be executed
    against any number of records.
    """

    __slots__ = ("name", "source", "_nodes")

    def __init__(self, name: str, source: str, nodes: tuple[Any, ...]):
        self.name = name
        self.source = source
        self._nodes = nodes

    def execute(self, context: Mapping[str, Any] | None = None) -> str:
        """Render the template against ``context``."""
        out: list[str] = []
        self._render(self._nodes, context if context is not None else {}, out)
        return "".join(out)

    def __repr__(self) -> str:
        return f"Template(name={self.name!r}, source={self.source!r})"

    def _render(self, nodes: tuple[Any, ...], dot: Any, out: list[str]) -> None:
        for node in nodes:
            if isinstance(node, _Text):
                out.append(node.text)
            elif isinstance(node, _Action):
                out.append(format_value(self._eval_pipeline(node.pipeline, dot)))
            elif _is_true(self._eval_pipeline(node.condition, dot)):
                self._render(node.body, dot, out)
            else:
                self._render(node.orelse, dot, out)

    def _eval_pipeline(self, pipeline: _Pipeline, dot: Any) -> Any:
        value: Any = MISSING
        for index, command in enumerate(pipeline.commands):
            value = self._eval_command(command, dot, value, piped=index > 0)
        return value

    def _eval_command(self, command: _Command, dot: Any, previous: Any, *, piped: bool) -> Any:
        first = command.operands[0]
        if not isinstance(first, _Function):
            return self._eval_operand(first, dot)

        args = [self._eval_operand(operand, dot) for operand in command.operands[1:]]
        if piped:
            args.append(previous)
        # missing fields reach functions as None
        args = [None if arg is MISSING else arg for arg in args]
        try:
            return first.func(*args)
        except Exception as exc:
            raise TemplateExecutionError(
                f"error calling {first.name}: {exc}", cause=exc
            ).with_context(template=self.source) from exc

    def _eval_operand(self, operand: Any, dot: Any) -> Any:
        if isinstance(operand, _Field):
            return self._lookup(dot, operand.path)
        if isinstance(operand, _Dot):
            return dot
        if isinstance(operand, _Literal):
            return operand.value
        return self._eval_pipeline(operand, dot)

    def _lookup(self, dot: Any, path: tuple[str, ...]) -> Any:
        value = dot
        for name in path:
            if value is MISSING or value is None:
                return MISSING
            if not isinstance(value, Mapping):
                raise TemplateExecutionError(
                    f"can't evaluate field {name} in type {type(value).__name__}"
                ).with_context(template=self.source)
            value = value.get(name, MISSING)
        return value


def compile_template(text: str, name: str = "") -> Template:
    """
    Compile template text.

    Raises:
        TemplateSyntaxError: On malformed syntax, an unknown function, or a
            function called with the wrong number of arguments.
    """
    lexer = _Lexer(text, name)
    nodes = _Parser(lexer, lexer.scan()).parse()
    return Template(name, text, nodes)


def execute(template: Template, context: Mapping[str, Any] | None = None) -> str:
    """Execute a compiled template against ``context``."""
    return template.execute(context)


def apply_template(text: str, context: Mapping[str, Any] | None = None, name: str = "") -> str:
    """Compile and execute ``text`` in one call."""
    return compile_template(text, name).execute(context)


def is_skip_key(rendered: str) -> bool:
    """True when a rendered map key means "write nothing for this record"."""
    return rendered == "" or rendered == NO_VALUE


__all__ = [
    "NO_VALUE",
    "NIL_VALUE",
    "MISSING",
    "FUNCTIONS",
    "Template",
    "compile_template",
    "execute",
    "apply_template",
    "is_skip_key",
    "format_value",
    "to_lower",
    "to_string",
    "to_set",
]
