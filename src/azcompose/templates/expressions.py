"""Predicate and variable expression language.

Inclusion predicates and workload variables are written in a small,
Bicep-flavoured expression language:

    deployKeyVault
    deployKeyVault == true
    environment == 'prod' && !empty(sqlAdminGroup)
    contains(enabledFeatures, 'backup') || tier >= 2
    network.enabled

Supported:
- Literals: true, false, null, integers, 'single' or "double" quoted strings
- Identifiers (workload parameters / variables) and `.property` access
- Operators: ! (not), unary -, &&, ||, ==, !=, <, <=, >, >=, parentheses
- Functions: empty, contains, length, toLower, toUpper, startsWith, endsWith

Expressions are parsed into a small AST and evaluated against an explicit
scope mapping. Nothing is ever executed as Python.
"""

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from azcompose.templates.errors import (
    CompositionError,
    ConstraintViolationError,
    TemplateDefinitionError,
    UndefinedReferenceError,
)

_TOKEN_PATTERN = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<number>\d+)
  | (?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
  | (?P<name>[A-Za-z_][A-Za-z0-9_]*)
  | (?P<op>==|!=|<=|>=|&&|\|\||[<>!().,\-])
    """,
    re.VERBOSE,
)

_KEYWORDS = {"true": True, "false": False, "null": None}


class ExpressionEvaluationError(ConstraintViolationError):
    """Raised when a well-formed expression cannot be evaluated (type mismatch).

    A predicate that yields a non-boolean, or an operator applied to values of
    the wrong type, violates the expression's type constraint.
    """

    def __init__(
        self,
        detail: str,
        value: Any = None,
        constraint: str = "type",
        module_id: str | None = None,
        field: str | None = None,
    ):
        self.parameter = None
        self.value = value
        self.constraint = constraint
        CompositionError.__init__(self, detail, module_id=module_id, field=field)


@dataclass(frozen=True)
class Token:
    kind: str
    text: str
    pos: int


def tokenize(source: str) -> list[Token]:
    """Split an expression into tokens.

    Raises:
        TemplateDefinitionError: On characters that are not part of the language
    """
    tokens = []
    pos = 0
    while pos < len(source):
        match = _TOKEN_PATTERN.match(source, pos)
        if not match:
            raise TemplateDefinitionError(
                f"unexpected character {source[pos]!r} at position {pos} in expression {source!r}"
            )
        kind = match.lastgroup or ""
        if kind != "ws":
            tokens.append(Token(kind, match.group(), pos))
        pos = match.end()
    tokens.append(Token("end", "", len(source)))
    return tokens


def _unquote(text: str) -> str:
    body = text[1:-1]
    return re.sub(r"\\(.)", r"\1", body)


# ============================================================================
# AST
# ============================================================================


class Node:
    """Base AST node."""

    def evaluate(self, scope: Mapping[str, Any]) -> Any:
        raise NotImplementedError

    def names(self) -> set[str]:
        """Return the root identifiers referenced by this node."""
        return set()


@dataclass(frozen=True)
class Literal(Node):
    value: Any

    def evaluate(self, scope: Mapping[str, Any]) -> Any:
        return self.value

    def __str__(self) -> str:
        if isinstance(self.value, bool):
            return "true" if self.value else "false"
        if self.value is None:
            return "null"
        if isinstance(self.value, str):
            return "'" + self.value.replace("'", "\\'") + "'"
        return str(self.value)


@dataclass(frozen=True)
class Name(Node):
    identifier: str

    def evaluate(self, scope: Mapping[str, Any]) -> Any:
        if self.identifier not in scope:
            raise UndefinedReferenceError(
                f"expression references undefined name '{self.identifier}'",
                reference=self.identifier,
            )
        return scope[self.identifier]

    def names(self) -> set[str]:
        return {self.identifier}

    def __str__(self) -> str:
        return self.identifier


@dataclass(frozen=True)
class Attribute(Node):
    target: Node
    attribute: str

    def evaluate(self, scope: Mapping[str, Any]) -> Any:
        value = self.target.evaluate(scope)
        if not isinstance(value, Mapping):
            raise ExpressionEvaluationError(
                f"cannot read property '{self.attribute}' of non-object value {value!r}"
            )
        if self.attribute not in value:
            raise UndefinedReferenceError(
                f"object '{self.target}' has no property '{self.attribute}'",
                reference=f"{self.target}.{self.attribute}",
            )
        return value[self.attribute]

    def names(self) -> set[str]:
        return self.target.names()

    def __str__(self) -> str:
        return f"{self.target}.{self.attribute}"


@dataclass(frozen=True)
class Not(Node):
    operand: Node

    def evaluate(self, scope: Mapping[str, Any]) -> Any:
        value = self.operand.evaluate(scope)
        if not isinstance(value, bool):
            raise ExpressionEvaluationError(f"operator '!' requires a boolean, got {value!r}")
        return not value

    def names(self) -> set[str]:
        return self.operand.names()

    def __str__(self) -> str:
        return f"!{self.operand}"


@dataclass(frozen=True)
class Negate(Node):
    operand: Node

    def evaluate(self, scope: Mapping[str, Any]) -> Any:
        value = self.operand.evaluate(scope)
        if isinstance(value, bool) or not isinstance(value, int):
            raise ExpressionEvaluationError(f"unary '-' requires an integer, got {value!r}")
        return -value

    def names(self) -> set[str]:
        return self.operand.names()

    def __str__(self) -> str:
        return f"-{self.operand}"


def _ordered(op: str, left: Any, right: Any) -> None:
    both_int = all(isinstance(v, int) and not isinstance(v, bool) for v in (left, right))
    both_str = all(isinstance(v, str) for v in (left, right))
    if not (both_int or both_str):
        raise ExpressionEvaluationError(
            f"operator '{op}' requires two integers or two strings, got {left!r} and {right!r}"
        )


def _equals(left: Any, right: Any) -> bool:
    # true == 1 must be false
    return type(left) is type(right) and left == right


_COMPARISONS: dict[str, Callable[[Any, Any], bool]] = {
    "==": _equals,
    "!=": lambda a, b: not _equals(a, b),
    "<": lambda a, b: a < b,
    "<=": lambda a, b: a <= b,
    ">": lambda a, b: a > b,
    ">=": lambda a, b: a >= b,
}


@dataclass(frozen=True)
class BinaryOp(Node):
    op: str
    left: Node
    right: Node

    def evaluate(self, scope: Mapping[str, Any]) -> Any:
        if self.op in ("&&", "||"):
            left = self.left.evaluate(scope)
            if not isinstance(left, bool):
                raise ExpressionEvaluationError(
                    f"operator '{self.op}' requires boolean operands, got {left!r}"
                )
            # Short-circuit
            if self.op == "&&" and not left:
                return False
            if self.op == "||" and left:
                return True
            right = self.right.evaluate(scope)
            if not isinstance(right, bool):
                raise ExpressionEvaluationError(
                    f"operator '{self.op}' requires boolean operands, got {right!r}"
                )
            return right

        left = self.left.evaluate(scope)
        right = self.right.evaluate(scope)
        if self.op in ("<", "<=", ">", ">="):
            _ordered(self.op, left, right)
        return _COMPARISONS[self.op](left, right)

    def names(self) -> set[str]:
        return self.left.names() | self.right.names()

    def __str__(self) -> str:
        return f"({self.left} {self.op} {self.right})"


def _fn_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, list, dict)):
        return len(value) == 0
    raise ExpressionEvaluationError(f"empty() requires a string, array or object, got {value!r}")


def _fn_contains(container: Any, item: Any) -> bool:
    if isinstance(container, str):
        if not isinstance(item, str):
            raise ExpressionEvaluationError("contains() on a string requires a string item")
        return item in container
    if isinstance(container, list):
        return any(_equals(element, item) for element in container)
    if isinstance(container, dict):
        if not isinstance(item, str):
            raise ExpressionEvaluationError(
                f"contains() on an object requires a string key, got {item!r}", value=item
            )
        return item in container
    raise ExpressionEvaluationError(
        f"contains() requires a string, array or object, got {container!r}"
    )


def _fn_length(value: Any) -> int:
    if isinstance(value, (str, list, dict)):
        return len(value)
    raise ExpressionEvaluationError(f"length() requires a string, array or object, got {value!r}")


def _string_fn(name: str, fn: Callable[..., Any]) -> Callable[..., Any]:
    def wrapper(*args: Any) -> Any:
        if not all(isinstance(a, str) for a in args):
            raise ExpressionEvaluationError(f"{name}() requires string arguments, got {args!r}")
        return fn(*args)

    return wrapper


# name -> (arity, implementation)
FUNCTIONS: dict[str, tuple[int, Callable[..., Any]]] = {
    "empty": (1, _fn_empty),
    "contains": (2, _fn_contains),
    "length": (1, _fn_length),
    "toLower": (1, _string_fn("toLower", str.lower)),
    "toUpper": (1, _string_fn("toUpper", str.upper)),
    "startsWith": (2, _string_fn("startsWith", str.startswith)),
    "endsWith": (2, _string_fn("endsWith", str.endswith)),
}


@dataclass(frozen=True)
class Call(Node):
    function: str
    args: tuple[Node, ...]

    def evaluate(self, scope: Mapping[str, Any]) -> Any:
        _, implementation = FUNCTIONS[self.function]
        return implementation(*(arg.evaluate(scope) for arg in self.args))

    def names(self) -> set[str]:
        found: set[str] = set()
        for arg in self.args:
            found |= arg.names()
        return found

    def __str__(self) -> str:
        return f"{self.function}({', '.join(str(a) for a in self.args)})"


# ============================================================================
# PARSER
# ============================================================================


class _Parser:
    """Recursive-descent parser.

    Precedence (lowest to highest): ||, &&, comparison, unary, postfix (.prop, call).
    """

    def __init__(self, source: str):
        self.source = source
        self.tokens = tokenize(source)
        self.index = 0

    def _peek(self) -> Token:
        return self.tokens[self.index]

    def _advance(self) -> Token:
        token = self.tokens[self.index]
        self.index += 1
        return token

    def _error(self, message: str, token: Token) -> TemplateDefinitionError:
        return TemplateDefinitionError(
            f"{message} at position {token.pos} in expression {self.source!r}"
        )

    def _expect(self, text: str) -> Token:
        token = self._advance()
        if token.text != text:
            raise self._error(f"expected '{text}' but found {token.text or 'end of input'!r}", token)
        return token

    def parse(self) -> Node:
        if self._peek().kind == "end":
            raise self._error("empty expression", self._peek())
        node = self._or()
        token = self._peek()
        if token.kind != "end":
            raise self._error(f"unexpected token {token.text!r}", token)
        return node

    def _or(self) -> Node:
        node = self._and()
        while self._peek().text == "||":
            self._advance()
            node = BinaryOp("||", node, self._and())
        return node

    def _and(self) -> Node:
        node = self._comparison()
        while self._peek().text == "&&":
            self._advance()
            node = BinaryOp("&&", node, self._comparison())
        return node

    def _comparison(self) -> Node:
        node = self._unary()
        if self._peek().text in _COMPARISONS:
            op = self._advance().text
            node = BinaryOp(op, node, self._unary())
            if self._peek().text in _COMPARISONS:
                raise self._error("chained comparisons need parentheses", self._peek())
        return node

    def _unary(self) -> Node:
        token = self._peek()
        if token.text == "!":
            self._advance()
            return Not(self._unary())
        if token.text == "-":
            self._advance()
            return Negate(self._unary())
        return self._postfix()

    def _postfix(self) -> Node:
        node = self._primary()
        while self._peek().text == ".":
            self._advance()
            token = self._advance()
            if token.kind != "name":
                raise self._error("expected property name after '.'", token)
            node = Attribute(node, token.text)
        return node

    def _primary(self) -> Node:
        token = self._advance()

        if token.kind == "number":
            return Literal(int(token.text))

        if token.kind == "string":
            return Literal(_unquote(token.text))

        if token.kind == "name":
            if token.text in _KEYWORDS:
                return Literal(_KEYWORDS[token.text])
            if self._peek().text == "(":
                return self._call(token)
            return Name(token.text)

        if token.text == "(":
            node = self._or()
            self._expect(")")
            return node

        raise self._error(f"unexpected token {token.text or 'end of input'!r}", token)

    def _call(self, name_token: Token) -> Node:
        if name_token.text not in FUNCTIONS:
            raise self._error(f"unknown function '{name_token.text}'", name_token)
        self._expect("(")
        args: list[Node] = []
        if self._peek().text != ")":
            args.append(self._or())
            while self._peek().text == ",":
                self._advance()
                args.append(self._or())
        self._expect(")")

        arity, _ = FUNCTIONS[name_token.text]
        if len(args) != arity:
            raise self._error(
                f"function '{name_token.text}' takes {arity} argument(s), got {len(args)}",
                name_token,
            )
        return Call(name_token.text, tuple(args))


class Expression:
    """A parsed predicate or variable expression."""

    def __init__(self, source: str, node: Node):
        self.source = source
        self.node = node

    @classmethod
    def parse(cls, source: Any) -> "Expression":
        """Parse an expression.

        Booleans and integers from YAML (e.g. ``condition: true``) are accepted
        as literal expressions.

        Raises:
            TemplateDefinitionError: If the expression is malformed
        """
        if isinstance(source, (bool, int)):
            node: Node = Literal(source)
            return cls(str(node), node)
        if not isinstance(source, str):
            raise TemplateDefinitionError(f"expression must be a string, got {source!r}")
        return cls(source, _Parser(source).parse())

    @property
    def references(self) -> set[str]:
        """Root identifiers this expression depends on."""
        return self.node.names()

    @property
    def normalized(self) -> str:
        """Canonical text, used to compare predicates structurally."""
        return str(self.node)

    def evaluate(self, scope: Mapping[str, Any]) -> Any:
        """Evaluate against a scope of parameter and variable values.

        Raises:
            UndefinedReferenceError: If a name or property does not exist
            ExpressionEvaluationError: If an operator or function gets the wrong types
        """
        try:
            return self.node.evaluate(scope)
        except ExpressionEvaluationError as e:
            if e.parameter is None:
                e.parameter = self.source
            raise

    def evaluate_bool(self, scope: Mapping[str, Any]) -> bool:
        """Evaluate and require a boolean result.

        Raises:
            ExpressionEvaluationError: If the result is not a boolean
        """
        value = self.evaluate(scope)
        if not isinstance(value, bool):
            error = ExpressionEvaluationError(
                f"expression {self.source!r} evaluated to {value!r}, expected a boolean",
                value=value,
                constraint="type bool",
            )
            error.parameter = self.source
            raise error
        return value

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Expression) and self.node == other.node

    def __hash__(self) -> int:
        return hash(self.node)

    def __repr__(self) -> str:
        return f"Expression({self.source!r})"

    def __str__(self) -> str:
        return self.source


__all__ = ["Expression", "ExpressionEvaluationError", "FUNCTIONS", "tokenize"]
