"""
Sandboxed expression language for rule predicates.

Rules encode policy as small expressions evaluated against a read-only
environment:

    inputs.borrower.fico < 620
    dependencies.FICO_MIN == 'fail' and inputs.loan.ltv > 0.95
    max(inputs.borrower.dti, inputs.coBorrower.dti) >= 0.43 ? true : false

The language is parsed by a hand-written recursive-descent parser into an
immutable tree and evaluated by walking that tree. Nothing is delegated to
Python's eval: only environment lookups, member/index access, operators and a
fixed set of numeric helpers are reachable.

Grammar (lowest to highest precedence):
    conditional    := or_expr ("?" conditional ":" conditional)?
    or_expr        := and_expr (("or" | "||") and_expr)*
    and_expr       := comparison (("and" | "&&") comparison)*
    comparison     := additive (("==" | "!=" | "<" | "<=" | ">" | ">=" | "in") additive)*
    additive       := multiplicative (("+" | "-") multiplicative)*
    multiplicative := unary (("*" | "/" | "%") unary)*
    unary          := ("-" | "+" | "!" | "not") unary | power
    power          := postfix ("^" unary)?
    postfix        := primary ("." NAME | "[" conditional "]")*
    primary        := NUMBER | STRING | "true" | "false" | "null" | NAME
                    | NAME "(" args ")" | "(" conditional ")" | "[" args "]"
"""

import math
import re
import threading
from collections import OrderedDict
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, NamedTuple

from rulegraph.core.errors import ExpressionError

# Deeper nesting is rejected instead of risking the interpreter stack
MAX_NESTING_DEPTH = 32

# Integer powers above this are rejected; they only appear in broken rules
MAX_INTEGER_EXPONENT = 1024

KEYWORDS = frozenset({"and", "or", "not", "in", "true", "false", "null"})

_TOKEN_RE = re.compile(
    r"""
    (?P<number>(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?)
    |(?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
    |(?P<name>[A-Za-z_$][A-Za-z0-9_$]*)
    |(?P<op>==|!=|<=|>=|&&|\|\||[-+*/%^<>!?:()\[\].,])
    """,
    re.VERBOSE,
)

_ESCAPE_RE = re.compile(r"\\(u[0-9a-fA-F]{4}|.)", re.DOTALL)
_SIMPLE_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "0": "\0"}


class Token(NamedTuple):
    kind: str  # number, string, name, op, eof
    value: str
    pos: int


# =============================================================================
# Expression tree
# =============================================================================


@dataclass(frozen=True, slots=True)
class Literal:
    value: Any


@dataclass(frozen=True, slots=True)
class Name:
    name: str


@dataclass(frozen=True, slots=True)
class Member:
    target: Any
    key: Any
    dotted: bool


@dataclass(frozen=True, slots=True)
class ListLiteral:
    items: tuple


@dataclass(frozen=True, slots=True)
class Unary:
    op: str
    operand: Any


@dataclass(frozen=True, slots=True)
class Binary:
    op: str
    left: Any
    right: Any


@dataclass(frozen=True, slots=True)
class Logical:
    op: str
    left: Any
    right: Any


@dataclass(frozen=True, slots=True)
class Conditional:
    test: Any
    then: Any
    otherwise: Any


@dataclass(frozen=True, slots=True)
class Call:
    func: str
    args: tuple


Node = Literal | Name | Member | ListLiteral | Unary | Binary | Logical | Conditional | Call


# =============================================================================
# Tokenizer
# =============================================================================


def tokenize(expression: str) -> list[Token]:
    """Split an expression into tokens, ending with an eof token."""
    tokens: list[Token] = []
    pos = 0
    length = len(expression)

    while pos < length:
        if expression[pos].isspace():
            pos += 1
            continue

        match = _TOKEN_RE.match(expression, pos)
        if not match:
            raise ExpressionError(
                f"Unexpected character {expression[pos]!r} at position {pos}",
                details={"expression": expression, "position": pos},
            )

        kind = match.lastgroup or "op"
        tokens.append(Token(kind, match.group(), pos))
        pos = match.end()

    tokens.append(Token("eof", "", length))
    return tokens


def _unescape(raw: str) -> str:
    def replace(match: re.Match) -> str:
        escape = match.group(1)
        if escape.startswith("u") and len(escape) == 5:
            return chr(int(escape[1:], 16))
        return _SIMPLE_ESCAPES.get(escape, escape)

    return _ESCAPE_RE.sub(replace, raw[1:-1])


def _parse_number(text: str) -> int | float:
    if any(c in text for c in ".eE"):
        return float(text)
    return int(text)


# =============================================================================
# Parser
# =============================================================================


class _Parser:
    """Recursive-descent parser producing an immutable expression tree."""

    def __init__(self, expression: str):
        self.expression = expression
        self.tokens = tokenize(expression)
        self.index = 0
        self.depth = 0

    # -- token helpers --------------------------------------------------------

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def _advance(self) -> Token:
        token = self.tokens[self.index]
        self.index += 1
        return token

    def _is_op(self, *values: str) -> bool:
        token = self.current
        return token.kind == "op" and token.value in values

    def _is_keyword(self, *values: str) -> bool:
        token = self.current
        return token.kind == "name" and token.value in values

    def _expect_op(self, value: str) -> Token:
        if not self._is_op(value):
            self._fail(f"Expected '{value}'")
        return self._advance()

    def _fail(self, message: str) -> None:
        token = self.current
        found = "end of expression" if token.kind == "eof" else repr(token.value)
        raise ExpressionError(
            f"{message} but found {found} at position {token.pos}",
            details={"expression": self.expression, "position": token.pos},
        )

    # -- grammar --------------------------------------------------------------

    def parse(self) -> Node:
        if self.current.kind == "eof":
            raise ExpressionError("Expression is empty", details={"expression": self.expression})
        node = self._conditional()
        if self.current.kind != "eof":
            self._fail("Expected end of expression")
        return node

    def _nested(self, rule: Callable[[], Node]) -> Node:
        """Parse a recursive grammar rule, counting it against the nesting limit."""
        self.depth += 1
        if self.depth > MAX_NESTING_DEPTH:
            raise ExpressionError(
                f"Expression nesting exceeds maximum depth of {MAX_NESTING_DEPTH}",
                details={"expression": self.expression},
            )
        try:
            return rule()
        finally:
            self.depth -= 1

    def _conditional(self) -> Node:
        return self._nested(self._ternary)

    def _ternary(self) -> Node:
        test = self._or()
        if not self._is_op("?"):
            return test
        self._advance()
        then = self._conditional()
        self._expect_op(":")
        otherwise = self._conditional()
        return Conditional(test, then, otherwise)

    def _or(self) -> Node:
        node = self._and()
        while self._is_keyword("or") or self._is_op("||"):
            self._advance()
            node = Logical("or", node, self._and())
        return node

    def _and(self) -> Node:
        node = self._comparison()
        while self._is_keyword("and") or self._is_op("&&"):
            self._advance()
            node = Logical("and", node, self._comparison())
        return node

    def _comparison(self) -> Node:
        node = self._additive()
        while self._is_op("==", "!=", "<", "<=", ">", ">=") or self._is_keyword("in"):
            op = self._advance().value
            node = Binary(op, node, self._additive())
        return node

    def _additive(self) -> Node:
        node = self._multiplicative()
        while self._is_op("+", "-"):
            op = self._advance().value
            node = Binary(op, node, self._multiplicative())
        return node

    def _multiplicative(self) -> Node:
        node = self._unary()
        while self._is_op("*", "/", "%"):
            op = self._advance().value
            node = Binary(op, node, self._unary())
        return node

    def _unary(self) -> Node:
        if self._is_op("-", "+", "!"):
            op = self._advance().value
            return Unary(op, self._nested(self._unary))
        if self._is_keyword("not"):
            self._advance()
            return Unary("!", self._nested(self._unary))
        return self._power()

    def _power(self) -> Node:
        node = self._postfix()
        if self._is_op("^"):
            self._advance()
            # Right associative: 2 ^ 3 ^ 2 == 2 ^ 9
            node = Binary("^", node, self._nested(self._unary))
        return node

    def _postfix(self) -> Node:
        node = self._primary()
        while True:
            if self._is_op("."):
                self._advance()
                token = self.current
                if token.kind != "name":
                    self._fail("Expected property name after '.'")
                self._advance()
                node = Member(node, token.value, dotted=True)
            elif self._is_op("["):
                self._advance()
                key = self._conditional()
                self._expect_op("]")
                node = Member(node, key, dotted=False)
            else:
                return node

    def _primary(self) -> Node:
        token = self.current

        if token.kind == "number":
            self._advance()
            return Literal(_parse_number(token.value))

        if token.kind == "string":
            self._advance()
            return Literal(_unescape(token.value))

        if token.kind == "name":
            self._advance()
            if token.value == "true":
                return Literal(True)
            if token.value == "false":
                return Literal(False)
            if token.value == "null":
                return Literal(None)
            if token.value in KEYWORDS:
                self.index -= 1
                self._fail("Expected a value")
            if self._is_op("("):
                return self._call(token)
            return Name(token.value)

        if self._is_op("("):
            self._advance()
            node = self._conditional()
            self._expect_op(")")
            return node

        if self._is_op("["):
            self._advance()
            return ListLiteral(self._arguments("]"))

        self._fail("Expected a value")

    def _call(self, name_token: Token) -> Node:
        if name_token.value not in FUNCTIONS:
            raise ExpressionError(
                f"Unknown function '{name_token.value}' at position {name_token.pos}",
                details={"expression": self.expression, "function": name_token.value},
            )
        self._advance()
        return Call(name_token.value, self._arguments(")"))

    def _arguments(self, closing: str) -> tuple:
        args = []
        if not self._is_op(closing):
            args.append(self._conditional())
            while self._is_op(","):
                self._advance()
                args.append(self._conditional())
        self._expect_op(closing)
        return tuple(args)


def parse_expression(expression: str) -> Node:
    """
    Parse an expression into an immutable tree.

    Raises:
        ExpressionError: On any syntax error, with the offending position
    """
    if not isinstance(expression, str):
        raise ExpressionError(
            "Expression must be a string", details={"type": type(expression).__name__}
        )
    return _Parser(expression).parse()


# =============================================================================
# Evaluation
# =============================================================================


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if _is_number(value):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "list"
    if isinstance(value, Mapping):
        return "object"
    return type(value).__name__


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _align(a: Any, b: Any) -> tuple[Any, Any]:
    """Bring a float and a Decimal onto Decimal so they can be combined."""
    if isinstance(a, Decimal) and isinstance(b, float):
        return a, Decimal(repr(b))
    if isinstance(b, Decimal) and isinstance(a, float):
        return Decimal(repr(a)), b
    return a, b


def _equals(a: Any, b: Any) -> bool:
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if _is_number(a) and _is_number(b):
        x, y = _align(a, b)
        return x == y
    if _is_number(a) or _is_number(b):
        return False
    return a == b


def _describe(node: Node) -> str:
    """Render a member-access chain back to its source form for messages."""
    parts = []
    while isinstance(node, Member):
        if node.dotted:
            parts.append(f".{node.key}")
        elif isinstance(node.key, Literal):
            parts.append(f"[{node.key.value!r}]")
        else:
            parts.append("[...]")
        node = node.target
    base = node.name if isinstance(node, Name) else "<expression>"
    return base + "".join(reversed(parts))


def _require_numbers(op: str, *values: Any) -> None:
    for value in values:
        if not _is_number(value):
            raise ExpressionError(
                f"Operator '{op}' requires numbers, got {', '.join(_type_name(v) for v in values)}",
                details={"operator": op, "types": [_type_name(v) for v in values]},
            )


def _compare(op: str, a: Any, b: Any) -> bool:
    if op == "==":
        return _equals(a, b)
    if op == "!=":
        return not _equals(a, b)

    if _is_number(a) and _is_number(b):
        a, b = _align(a, b)
    elif not (isinstance(a, str) and isinstance(b, str)):
        raise ExpressionError(
            f"Cannot compare {_type_name(a)} with {_type_name(b)} using '{op}'",
            details={"operator": op, "types": [_type_name(a), _type_name(b)]},
        )

    if op == "<":
        return a < b
    if op == "<=":
        return a <= b
    if op == ">":
        return a > b
    return a >= b


def _contains(item: Any, container: Any) -> bool:
    if isinstance(container, (list, tuple)):
        return any(_equals(item, candidate) for candidate in container)
    if isinstance(container, str) and isinstance(item, str):
        return item in container
    if isinstance(container, Mapping) and isinstance(item, str):
        return item in container
    raise ExpressionError(
        f"Operator 'in' cannot test {_type_name(item)} against {_type_name(container)}",
        details={"operator": "in", "types": [_type_name(item), _type_name(container)]},
    )


def _arithmetic(op: str, a: Any, b: Any) -> Any:
    if op == "+" and isinstance(a, str) and isinstance(b, str):
        return a + b

    _require_numbers(op, a, b)
    a, b = _align(a, b)

    if op == "+":
        return a + b
    if op == "-":
        return a - b
    if op == "*":
        return a * b
    if op in ("/", "%") and b == 0:
        raise ExpressionError("Division by zero", details={"operator": op})
    if op == "/":
        return a / b
    if op == "%":
        # Sign follows the dividend
        remainder = abs(a) % abs(b)
        return -remainder if a < 0 else remainder

    if isinstance(a, int) and isinstance(b, int) and abs(b) > MAX_INTEGER_EXPONENT:
        raise ExpressionError(
            f"Exponent {b} exceeds maximum of {MAX_INTEGER_EXPONENT}",
            details={"operator": op},
        )
    result = a**b
    if isinstance(result, complex):
        raise ExpressionError(
            f"Operator '^' produced a non-real result for {a} ^ {b}", details={"operator": op}
        )
    return result


def _member(node: Member, target: Any, key: Any) -> Any:
    if isinstance(target, Mapping):
        if not isinstance(key, str):
            raise ExpressionError(
                f"Object key must be a string in '{_describe(node)}', got {_type_name(key)}",
                details={"path": _describe(node)},
            )
        if key not in target:
            raise ExpressionError(
                f"Unknown path '{_describe(node)}'", details={"path": _describe(node)}
            )
        return target[key]

    if isinstance(target, (list, tuple)):
        if isinstance(key, bool) or not _is_number(key) or key != int(key):
            raise ExpressionError(
                f"List index must be an integer in '{_describe(node)}', got {_type_name(key)}",
                details={"path": _describe(node)},
            )
        index = int(key)
        if index < 0 or index >= len(target):
            raise ExpressionError(
                f"List index {index} out of range in '{_describe(node)}'",
                details={"path": _describe(node), "length": len(target)},
            )
        return target[index]

    raise ExpressionError(
        f"Cannot read {key!r} of {_type_name(target)} in '{_describe(node)}'",
        details={"path": _describe(node), "type": _type_name(target)},
    )


def _evaluate(node: Node, env: Mapping[str, Any]) -> Any:
    if isinstance(node, Literal):
        return node.value

    if isinstance(node, Name):
        if node.name not in env:
            raise ExpressionError(
                f"Unknown identifier '{node.name}'", details={"identifier": node.name}
            )
        return env[node.name]

    if isinstance(node, Member):
        return _evaluate_path(node, env)

    if isinstance(node, (Binary, Logical)):
        return _evaluate_chain(node, env)

    if isinstance(node, Conditional):
        if _evaluate(node.test, env):
            return _evaluate(node.then, env)
        return _evaluate(node.otherwise, env)

    if isinstance(node, Unary):
        operand = _evaluate(node.operand, env)
        if node.op == "!":
            return not operand
        _require_numbers(node.op, operand)
        return -operand if node.op == "-" else +operand

    if isinstance(node, ListLiteral):
        return [_evaluate(item, env) for item in node.items]

    if isinstance(node, Call):
        return FUNCTIONS[node.func](*[_evaluate(arg, env) for arg in node.args])

    raise ExpressionError(f"Unsupported expression node {type(node).__name__}")


def _evaluate_path(node: Member, env: Mapping[str, Any]) -> Any:
    """Walk a member-access chain from its root outward."""
    links = []
    while isinstance(node, Member):
        links.append(node)
        node = node.target

    value = _evaluate(node, env)
    for link in reversed(links):
        key = link.key if link.dotted else _evaluate(link.key, env)
        value = _member(link, value, key)
    return value


def _evaluate_chain(node: Binary | Logical, env: Mapping[str, Any]) -> Any:
    """
    Fold a chain of binary and logical operators left to right.

    The parser builds `a + b + c` as ((a + b) + c), so a long chain nests
    along its left operands. Folding iteratively keeps evaluation depth
    independent of the chain's length.
    """
    links = []
    while isinstance(node, (Binary, Logical)):
        links.append(node)
        node = node.left

    value = _evaluate(node, env)
    for link in reversed(links):
        if isinstance(link, Logical):
            left = bool(value)
            if link.op == "and":
                value = left and bool(_evaluate(link.right, env))
            else:
                value = left or bool(_evaluate(link.right, env))
            continue

        right = _evaluate(link.right, env)
        if link.op in ("==", "!=", "<", "<=", ">", ">="):
            value = _compare(link.op, value, right)
        elif link.op == "in":
            value = _contains(value, right)
        else:
            value = _arithmetic(link.op, value, right)
    return value


# =============================================================================
# Functions
# =============================================================================


def _numeric_args(name: str, args: tuple) -> list:
    # min/max also accept a single list argument
    if len(args) == 1 and isinstance(args[0], (list, tuple)):
        args = tuple(args[0])
    if not args:
        raise ExpressionError(f"{name}() requires at least one argument")
    for arg in args:
        if not _is_number(arg):
            raise ExpressionError(
                f"{name}() requires numbers, got {_type_name(arg)}",
                details={"function": name},
            )
    if any(isinstance(arg, Decimal) for arg in args):
        return [arg if isinstance(arg, Decimal) else Decimal(repr(arg)) for arg in args]
    return list(args)


def _fn_abs(value: Any) -> Any:
    _require_numbers("abs", value)
    return abs(value)


def _fn_min(*args: Any) -> Any:
    return min(_numeric_args("min", args))


def _fn_max(*args: Any) -> Any:
    return max(_numeric_args("max", args))


def _fn_round(value: Any, places: Any = 0) -> Any:
    """Round half away from zero, the way policy documents state thresholds."""
    _require_numbers("round", value, places)
    exponent = Decimal(1).scaleb(-int(places))
    source = value if isinstance(value, Decimal) else Decimal(repr(value))
    rounded = source.quantize(exponent, rounding=ROUND_HALF_UP)
    if isinstance(value, Decimal):
        return rounded
    if int(places) <= 0:
        return int(rounded)
    return float(rounded)


def _fn_floor(value: Any) -> int:
    _require_numbers("floor", value)
    return math.floor(value)


def _fn_ceil(value: Any) -> int:
    _require_numbers("ceil", value)
    return math.ceil(value)


def _fn_length(value: Any) -> int:
    if not isinstance(value, (str, list, tuple, Mapping)):
        raise ExpressionError(
            f"length() requires a string, list or object, got {_type_name(value)}",
            details={"function": "length"},
        )
    return len(value)


FUNCTIONS = {
    "abs": _fn_abs,
    "min": _fn_min,
    "max": _fn_max,
    "round": _fn_round,
    "floor": _fn_floor,
    "ceil": _fn_ceil,
    "length": _fn_length,
}


# =============================================================================
# Cache and entry point
# =============================================================================


class ExpressionCache:
    """
    Thread-safe LRU cache of parsed expression trees.

    Injected by callers that evaluate the same rule set repeatedly; trees are
    immutable, so one cache may be shared by concurrent evaluations. Syntax
    errors are not cached.
    """

    def __init__(self, maxsize: int = 1024):
        self.maxsize = maxsize
        self.hits = 0
        self.misses = 0
        self._entries: OrderedDict[str, Node] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get_or_parse(self, expression: str) -> Node:
        with self._lock:
            node = self._entries.get(expression)
            if node is not None:
                self._entries.move_to_end(expression)
                self.hits += 1
                return node

        node = parse_expression(expression)

        with self._lock:
            self.misses += 1
            if self.maxsize > 0:
                self._entries[expression] = node
                self._entries.move_to_end(expression)
                while len(self._entries) > self.maxsize:
                    self._entries.popitem(last=False)
        return node

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0


def evaluate_expression(
    expression: str, environment: Mapping[str, Any], cache: ExpressionCache | None = None
) -> bool:
    """
    Parse and evaluate an expression, coercing the result to a boolean.

    Args:
        expression: Rule expression text
        environment: Read-only names visible to the expression
                     ({"inputs": ..., "asOf": ..., "dependencies": {...}})
        cache: Optional shared parse cache

    Returns:
        Truthiness of the expression's value

    Raises:
        ExpressionError: On syntax errors, unknown identifiers or paths,
                         and type errors. Never coerces a failure to False.
    """
    try:
        if cache is not None:
            node = cache.get_or_parse(expression)
        else:
            node = parse_expression(expression)
        return bool(_evaluate(node, environment))
    except ExpressionError:
        raise
    except RecursionError as e:
        raise ExpressionError(
            "Expression is nested too deeply to evaluate",
            details={"expression": expression, "error_type": type(e).__name__},
        ) from e
    except (ArithmeticError, TypeError, ValueError) as e:
        raise ExpressionError(
            f"Expression evaluation failed: {e}",
            details={"expression": expression, "error_type": type(e).__name__},
        ) from e
