"""Translation of Handlebars descriptor templates into Jinja2 source.

Descriptors, rules documents and data-source configs carry templates in
Handlebars syntax:

- ``{{person.address.city}}``, ``{{addresses.0.street}}``, ``{{this.name}}``
- helper calls and subexpressions: ``{{not (eq country "US")}}``
- block helpers ``{{#if}}``, ``{{#unless}}``, ``{{#each}}`` and ``{{#with}}``,
  with ``{{else}}`` and ``{{else if ...}}``
- ``{{@index}}``, ``{{@key}}``, ``{{@first}}``, ``{{@last}}``, ``{{../name}}``
- comments ``{{! ... }}`` and whitespace control ``{{~name~}}``

Every path is read from the ``_root`` render variable (or from the current
``#each``/``#with`` scope), so context keys never collide with Jinja keywords
or globals.

>>> translate('{{not (eq country "US")}}')
'{{ not_(eq(_root["country"], "US")) }}'
>>> translate("{{#each cities}}{{@index}}:{{name}} {{/each}}")
'{% for _key1, _this1 in _each(_root["cities"]) %}{{ loop.index0 }}:{{ _this1["name"] }} {% endfor %}'
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from dataclasses import dataclass

from jinja2 import TemplateSyntaxError

from formengine.templates.helpers import HELPER_NAMES

__all__ = ["ROOT", "translate"]

#: Render variable holding the evaluation context.
ROOT = "_root"

_MUSTACHE = re.compile(
    r"\{\{(?P<open>~?)(?:"
    r"!--(?P<long_comment>.*?)--"
    r"|!(?P<comment>.*?)"
    r"|\{(?P<raw>.*?)\}"
    r"|&(?P<amp>.*?)"
    r"|(?P<body>.*?)"
    r")(?P<close>~?)\}\}",
    re.DOTALL,
)

_TOKEN = re.compile(
    r"\s*(?:"
    r"(?P<lparen>\()"
    r"|(?P<rparen>\))"
    r"|(?P<string>\"(?:[^\"\\]|\\.)*\"|'(?:[^'\\]|\\.)*')"
    r"|(?P<number>-?\d+(?:\.\d+)?)(?=[\s()]|$)"
    r"|(?P<path>(?:[^\s()\"'\[\]{}=|]|\[[^\]]*\])+)"
    r")"
)

_SEGMENT = re.compile(r"\[([^\]]*)\]|([^./\[]+)")

_LITERALS = {"true": "true", "false": "false", "null": "none", "undefined": "none"}
_LOOP_DATA = {"index": "loop.index0", "first": "loop.first", "last": "loop.last"}

_ErrorFactory = Callable[[str], TemplateSyntaxError]


@dataclass
class _Scope:
    value: str
    key: str | None = None


@dataclass
class _Block:
    kind: str
    scope_open: bool = False
    has_else: bool = False


class _ExpressionParser:
    """Parses one mustache body into a Jinja expression."""

    def __init__(self, source: str, scopes: list[_Scope], error: _ErrorFactory) -> None:
        self.tokens = self._tokenize(source, error)
        self.position = 0
        self.scopes = scopes
        self.error = error

    @staticmethod
    def _tokenize(source: str, error: _ErrorFactory) -> list[tuple[str, str]]:
        tokens = []
        position = 0
        stripped = source.rstrip()
        while position < len(stripped):
            match = _TOKEN.match(stripped, position)
            if match is None or match.end() == position:
                raise error(f"unexpected {stripped[position:].strip()!r}")
            kind = match.lastgroup
            tokens.append((kind, match.group(kind)))
            position = match.end()
        return tokens

    def _peek(self) -> tuple[str, str] | None:
        return self.tokens[self.position] if self.position < len(self.tokens) else None

    def _next(self) -> tuple[str, str]:
        token = self._peek()
        if token is None:
            raise self.error("unexpected end of expression")
        self.position += 1
        return token

    def parse(self) -> str:
        """Parse the whole body as a call or a value."""
        if not self.tokens:
            raise self.error("empty expression")
        expression = self._call(closing=None)
        if self._peek() is not None:
            raise self.error(f"unexpected {self._peek()[1]!r}")
        return expression

    def _call(self, closing: str | None) -> str:
        start = self.position
        kind, name = self._next()
        if kind == "path" and name in HELPER_NAMES:
            params = []
            while (token := self._peek()) is not None and token[0] != closing:
                params.append(self._param())
            return f"{HELPER_NAMES[name]}({', '.join(params)})"
        self.position = start
        value = self._param()
        token = self._peek()
        if token is not None and token[0] != closing:
            raise self.error(f"missing helper {name!r}")
        return value

    def _param(self) -> str:
        kind, text = self._next()
        if kind == "lparen":
            expression = self._call(closing="rparen")
            if self._next()[0] != "rparen":
                raise self.error("unbalanced parentheses")
            return expression
        if kind == "rparen":
            raise self.error("unbalanced parentheses")
        if kind == "string":
            quote = text[0]
            return json.dumps(text[1:-1].replace("\\" + quote, quote))
        if kind == "number":
            return text
        return self.path(text)

    def path(self, text: str) -> str:
        """Translate a Handlebars path to a lookup on the right scope."""
        if text in _LITERALS:
            return _LITERALS[text]
        if text.startswith("@"):
            name, _, rest = text[1:].partition(".")
            if name == "root":
                return _lookup(ROOT, rest)
            if name == "key":
                return next((s.key for s in reversed(self.scopes) if s.key), "none")
            if name in _LOOP_DATA and not rest:
                return _LOOP_DATA[name]
            raise self.error(f"unknown data variable {text!r}")
        depth = 0
        while text.startswith("../"):
            depth += 1
            text = text[3:]
        for prefix in ("./", "this/", "this."):
            if text.startswith(prefix):
                text = text[len(prefix):]
        if text in ("this", "."):
            text = ""
        scope = self.scopes[max(len(self.scopes) - 1 - depth, 0)]
        return _lookup(scope.value, text)


def _lookup(base: str, path: str) -> str:
    expression = base
    for bracketed, plain in _SEGMENT.findall(path):
        segment = bracketed if bracketed else plain
        if segment.isdigit():
            expression += f"[{int(segment)}]"
        else:
            expression += f"[{json.dumps(segment)}]"
    return expression


def _text(chunk: str) -> str:
    """Literal text, quoted when Jinja would otherwise read it as syntax."""
    if "{%" in chunk or "{#" in chunk or chunk.endswith("{"):
        return "{{ " + json.dumps(chunk) + " }}"
    return chunk


def translate(source: str) -> str:
    """Translate a Handlebars template into equivalent Jinja2 source.

    Raises:
        jinja2.TemplateSyntaxError: On malformed mustaches, unknown block
            helpers, helpers that do not exist or unbalanced blocks
    """
    scopes = [_Scope(ROOT)]
    blocks: list[_Block] = []
    output: list[str] = []
    position = 0

    for match in _MUSTACHE.finditer(source):
        lineno = source.count("\n", 0, match.start()) + 1

        def error(message: str, lineno: int = lineno) -> TemplateSyntaxError:
            return TemplateSyntaxError(message, lineno)

        chunk = source[position : match.start()]
        if "{{" in chunk:
            raise error("unterminated mustache")
        output.append(_text(chunk))
        position = match.end()

        if match.group("long_comment") is not None or match.group("comment") is not None:
            continue

        left = "-" if match.group("open") else ""
        right = "-" if match.group("close") else ""

        def tag(statement: str) -> str:
            return "{%" + left + " " + statement + " " + right + "%}"

        raw = match.group("raw")
        if raw is None:
            raw = match.group("amp")
        if raw is not None:
            expression = _ExpressionParser(raw, scopes, error).parse()
            output.append("{{" + left + " " + expression + " " + right + "}}")
            continue

        body = match.group("body").strip()
        if body.startswith("#"):
            name, _, rest = body[1:].partition(" ")
            if name not in ("if", "unless", "each", "with"):
                raise error(f"unknown block helper {name!r}")
            expression = _ExpressionParser(rest, scopes, error).parse()
            block = _Block(name)
            if name == "if":
                output.append(tag(f"if _if({expression})"))
            elif name == "unless":
                output.append(tag(f"if not _if({expression})"))
            else:
                depth = len(scopes)
                scope = _Scope(f"_this{depth}")
                if name == "each":
                    scope.key = f"_key{depth}"
                    output.append(
                        tag(f"for {scope.key}, {scope.value} in _each({expression})")
                    )
                else:
                    output.append(tag(f"with {scope.value} = {expression}"))
                    output.append(tag(f"if _if({scope.value})"))
                scopes.append(scope)
                block.scope_open = True
            blocks.append(block)
        elif body == "else" or body == "^" or body.startswith("else "):
            if not blocks:
                raise error("else outside of a block")
            block = blocks[-1]
            condition = body[5:].strip() if body.startswith("else ") else ""
            if condition:
                helper, _, rest = condition.partition(" ")
                if block.kind not in ("if", "unless") or helper not in ("if", "unless"):
                    raise error(f"unsupported chained else {condition!r}")
                expression = _ExpressionParser(rest, scopes, error).parse()
                negate = "not " if helper == "unless" else ""
                output.append(tag(f"elif {negate}_if({expression})"))
                continue
            if block.has_else:
                raise error("duplicate else")
            block.has_else = True
            output.append(tag("else"))
            if block.scope_open:
                scopes.pop()
                block.scope_open = False
        elif body.startswith("/"):
            name = body[1:].strip()
            if not blocks or blocks[-1].kind != name:
                raise error(f"unexpected closing block {name!r}")
            block = blocks.pop()
            if block.scope_open:
                scopes.pop()
            if block.kind == "each":
                output.append(tag("endfor"))
            elif block.kind == "with":
                output.append(tag("endif"))
                output.append(tag("endwith"))
            else:
                output.append(tag("endif"))
        elif body.startswith(">"):
            raise error("partials are not supported")
        elif body.startswith("^"):
            raise error("inverse sections are not supported, use #unless")
        else:
            expression = _ExpressionParser(body, scopes, error).parse()
            output.append("{{" + left + " " + expression + " " + right + "}}")

    tail = source[position:]
    if "{{" in tail:
        raise TemplateSyntaxError("unterminated mustache", source.count("\n") + 1)
    if blocks:
        raise TemplateSyntaxError(
            f"unclosed block {blocks[-1].kind!r}", source.count("\n") + 1
        )
    output.append(_text(tail))
    return "".join(output)
