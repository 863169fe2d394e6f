"""
A small boolean expression language for user-supplied conditions.

Accepted grammar::

    expr    := or
    or      := and ("||" and)*
    and     := rel ("&&" rel)*
    rel     := unary (("==" | "!=" | "<" | "<=" | ">" | ">=" | "in") unary)?
    unary   := ("!" | "-") unary | postfix
    postfix := primary ("[" expr "]" | "." "contains" "(" expr ")")*
    primary := INT | STRING | "true" | "false" | "null" | IDENT
             | "has" "(" IDENT ")" | "(" expr ")" | "[" [expr ("," expr)*] "]"

Variables that may be absent hold ``None`` in the environment. Reading one
raises :class:`EvaluationError` unless a ``has()`` test short-circuited the
read away, so missing data never passes or fails a condition silently.
Comparing a variable against ``null`` with ``==`` or ``!=`` is the one other
place an absent value may be read.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from .errors import EvaluationError, ExpressionSyntaxError


_TOKEN_PATTERN = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<int>\d+)
  | (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
  | (?P<op>==|!=|<=|>=|&&|\|\||[<>!()\[\],.\-])
  | (?P<ident>[A-Za-z_][A-Za-z0-9_]*)
    """,
    re.VERBOSE,
)

_KEYWORDS = {"true": True, "false": False, "null": None}
_COMPARISONS = ("==", "!=", "<", "<=", ">", ">=", "in")
_ESCAPES = {"n": "\n", "t": "\t", "\\": "\\", '"': '"', "'": "'"}


@dataclass(frozen=True)
class Token:
    kind: str
    text: str
    position: int


# AST -----------------------------------------------------------------------


class Expr:
    """Base class for expression nodes."""


@dataclass(frozen=True)
class Literal(Expr):
    value: Any


@dataclass(frozen=True)
class Name(Expr):
    name: str


@dataclass(frozen=True)
class Has(Expr):
    name: str


@dataclass(frozen=True)
class ListExpr(Expr):
    items: Tuple[Expr, ...]


@dataclass(frozen=True)
class Unary(Expr):
    op: str
    operand: Expr


@dataclass(frozen=True)
class Binary(Expr):
    op: str
    left: Expr
    right: Expr


@dataclass(frozen=True)
class Index(Expr):
    target: Expr
    key: Expr


@dataclass(frozen=True)
class Contains(Expr):
    container: Expr
    item: Expr


# Parsing -------------------------------------------------------------------


def tokenize(source: str) -> List[Token]:
    tokens: List[Token] = []
    position = 0
    while position < len(source):
        match = _TOKEN_PATTERN.match(source, position)
        if match is None:
            raise ExpressionSyntaxError(f"unexpected character {source[position]!r}", position)
        kind = match.lastgroup
        if kind != "ws":
            tokens.append(Token(kind, match.group(), position))
        position = match.end()
    tokens.append(Token("end", "", position))
    return tokens


class _Parser:
    def __init__(self, source: str) -> None:
        self._tokens = tokenize(source)
        self._index = 0

    def parse(self) -> Expr:
        expr = self._or()
        token = self._peek()
        if token.kind != "end":
            raise ExpressionSyntaxError(f"unexpected {token.text!r}", token.position)
        return expr

    def _peek(self) -> Token:
        return self._tokens[self._index]

    def _advance(self) -> Token:
        token = self._tokens[self._index]
        self._index += 1
        return token

    def _accept(self, text: str) -> bool:
        token = self._peek()
        if token.kind in ("op", "ident") and token.text == text:
            self._index += 1
            return True
        return False

    def _expect(self, text: str) -> None:
        if not self._accept(text):
            token = self._peek()
            found = token.text or "end of input"
            raise ExpressionSyntaxError(f"expected {text!r}, found {found!r}", token.position)

    def _or(self) -> Expr:
        left = self._and()
        while self._accept("||"):
            left = Binary("||", left, self._and())
        return left

    def _and(self) -> Expr:
        left = self._relation()
        while self._accept("&&"):
            left = Binary("&&", left, self._relation())
        return left

    def _relation(self) -> Expr:
        left = self._unary()
        for op in _COMPARISONS:
            if self._accept(op):
                return Binary(op, left, self._unary())
        return left

    def _unary(self) -> Expr:
        if self._accept("!"):
            return Unary("!", self._unary())
        if self._accept("-"):
            return Unary("-", self._unary())
        return self._postfix()

    def _postfix(self) -> Expr:
        expr = self._primary()
        while True:
            if self._accept("["):
                key = self._or()
                self._expect("]")
                expr = Index(expr, key)
            elif self._accept("."):
                method = self._advance()
                if method.kind != "ident" or method.text != "contains":
                    raise ExpressionSyntaxError(
                        f"unknown method {method.text!r}", method.position
                    )
                self._expect("(")
                item = self._or()
                self._expect(")")
                expr = Contains(expr, item)
            else:
                return expr

    def _primary(self) -> Expr:
        token = self._advance()
        if token.kind == "int":
            return Literal(int(token.text))
        if token.kind == "string":
            return Literal(_unquote(token))
        if token.kind == "ident":
            if token.text in _KEYWORDS:
                return Literal(_KEYWORDS[token.text])
            if token.text == "has" and self._accept("("):
                name = self._advance()
                if name.kind != "ident" or name.text in _KEYWORDS:
                    raise ExpressionSyntaxError("has() takes a variable name", name.position)
                self._expect(")")
                return Has(name.text)
            if self._peek().text == "(":
                raise ExpressionSyntaxError(f"unknown function {token.text!r}", token.position)
            return Name(token.text)
        if token.kind == "op" and token.text == "(":
            expr = self._or()
            self._expect(")")
            return expr
        if token.kind == "op" and token.text == "[":
            items: List[Expr] = []
            if not self._accept("]"):
                items.append(self._or())
                while self._accept(","):
                    items.append(self._or())
                self._expect("]")
            return ListExpr(tuple(items))
        found = token.text or "end of input"
        raise ExpressionSyntaxError(f"unexpected {found!r}", token.position)


def _unquote(token: Token) -> str:
    body = token.text[1:-1]
    return re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), m.group(1)), body)


def parse(source: str) -> Expr:
    return _Parser(source).parse()


# Evaluation ----------------------------------------------------------------


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "int"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "list"
    if isinstance(value, Mapping):
        return "map"
    return type(value).__name__


def _require(value: Any, expected: str, context: str) -> Any:
    if _type_name(value) != expected:
        raise EvaluationError(f"{context} expects {expected}, got {_type_name(value)}")
    return value


def _is_null(expr: Expr) -> bool:
    return isinstance(expr, Literal) and expr.value is None


_ORDERINGS: Dict[str, Callable[[Any, Any], bool]] = {
    "<": lambda a, b: a < b,
    "<=": lambda a, b: a <= b,
    ">": lambda a, b: a > b,
    ">=": lambda a, b: a >= b,
}


class Evaluator:
    """Evaluate an expression tree against a variable environment."""

    def __init__(self, variables: Mapping[str, Any]) -> None:
        self._variables = variables

    def evaluate(self, expr: Expr) -> Any:
        if isinstance(expr, Literal):
            return expr.value
        if isinstance(expr, Name):
            return self._lookup(expr.name)
        if isinstance(expr, Has):
            if expr.name not in self._variables:
                raise EvaluationError(f"unknown variable `{expr.name}`")
            return self._variables[expr.name] is not None
        if isinstance(expr, ListExpr):
            return [self.evaluate(item) for item in expr.items]
        if isinstance(expr, Unary):
            return self._unary(expr)
        if isinstance(expr, Binary):
            return self._binary(expr)
        if isinstance(expr, Index):
            return self._index(expr)
        if isinstance(expr, Contains):
            return self._contains(self.evaluate(expr.container), self.evaluate(expr.item))
        raise EvaluationError(f"unsupported expression {expr!r}")

    def _lookup(self, name: str) -> Any:
        if name not in self._variables:
            raise EvaluationError(f"unknown variable `{name}`")
        value = self._variables[name]
        if value is None:
            raise EvaluationError(f"`{name}` is not set; guard it with has({name})")
        return value

    def _unary(self, expr: Unary) -> Any:
        value = self.evaluate(expr.operand)
        if expr.op == "!":
            return not _require(value, "bool", "`!`")
        return -_require(value, "int", "unary `-`")

    def _binary(self, expr: Binary) -> Any:
        op = expr.op
        if op in ("&&", "||"):
            left = _require(self.evaluate(expr.left), "bool", f"`{op}`")
            if (op == "&&" and not left) or (op == "||" and left):
                return left
            return _require(self.evaluate(expr.right), "bool", f"`{op}`")

        if op in ("==", "!="):
            return self._equality(expr)

        left = self.evaluate(expr.left)
        right = self.evaluate(expr.right)
        if op == "in":
            return self._contains(right, left)

        kind = _type_name(left)
        if kind not in ("int", "string") or kind != _type_name(right):
            raise EvaluationError(
                f"`{op}` cannot order {_type_name(left)} and {_type_name(right)}"
            )
        return _ORDERINGS[op](left, right)

    def _equality(self, expr: Binary) -> bool:
        # Either side may be an absent variable when the other is `null`.
        null_test = _is_null(expr.left) or _is_null(expr.right)
        left = self._operand(expr.left, null_test)
        right = self._operand(expr.right, null_test)
        if left is None or right is None:
            equal = left is right
        elif _type_name(left) != _type_name(right):
            raise EvaluationError(
                f"cannot compare {_type_name(left)} with {_type_name(right)}"
            )
        else:
            equal = left == right
        return equal if expr.op == "==" else not equal

    def _operand(self, expr: Expr, allow_absent: bool) -> Any:
        if allow_absent and isinstance(expr, Name):
            if expr.name not in self._variables:
                raise EvaluationError(f"unknown variable `{expr.name}`")
            return self._variables[expr.name]
        return self.evaluate(expr)

    def _index(self, expr: Index) -> Any:
        target = self.evaluate(expr.target)
        key = self.evaluate(expr.key)
        kind = _type_name(target)
        if kind == "map":
            _require(key, "string", "map index")
            if key not in target:
                raise EvaluationError(f"no such key {key!r}")
            return target[key]
        if kind == "list":
            _require(key, "int", "list index")
            if not 0 <= key < len(target):
                raise EvaluationError(f"index {key} out of range")
            return target[key]
        raise EvaluationError(f"cannot index into {kind}")

    def _contains(self, container: Any, item: Any) -> bool:
        kind = _type_name(container)
        if kind == "list":
            return any(
                _type_name(element) == _type_name(item) and element == item
                for element in container
            )
        if kind == "map":
            return _require(item, "string", "map membership") in container
        if kind == "string":
            return _require(item, "string", "`contains`") in container
        raise EvaluationError(f"{kind} has no members")


@dataclass(frozen=True)
class Condition:
    """A parsed condition, compiled once per run and evaluated per fact."""

    source: str
    tree: Expr

    @classmethod
    def compile(cls, source: str) -> "Condition":
        return cls(source=source, tree=parse(source))

    def evaluate(self, variables: Mapping[str, Any]) -> bool:
        result = Evaluator(variables).evaluate(self.tree)
        if not isinstance(result, bool):
            raise EvaluationError(
                f"conditions must return a boolean but returned {_type_name(result)}"
            )
        return result


def compile_condition(source: Optional[str]) -> Optional[Condition]:
    if source is None or not source.strip():
        return None
    return Condition.compile(source)
