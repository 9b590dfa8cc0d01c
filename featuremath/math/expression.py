"""
Custom transform expressions for featuremath.

Expressions such as ``log(x+1)`` or ``(x-mean)/std`` are tokenized, parsed
by a small recursive-descent parser into a closed AST, and evaluated by
walking the tree. Only the names below are accepted:

- variables: x, min, max, mean, std
- constants: PI, E
- functions: log, log10, sqrt, abs, exp, sin, cos (one argument), pow (two)
- operators: + - * / ^ and parentheses

Nothing is ever handed to eval/exec/compile, so an expression can only
compute a number from the bound values.
"""

import functools
import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, NamedTuple, Optional, Tuple, Union

from featuremath.errors import ExpressionError

# Set up logging
logger = logging.getLogger(__name__)


VARIABLES = ('x', 'min', 'max', 'mean', 'std')

CONSTANTS: Dict[str, float] = {
    'PI': math.pi,
    'E': math.e,
}

# name -> (callable, arity)
FUNCTIONS: Dict[str, Tuple[Callable[..., float], int]] = {
    'log': (math.log, 1),
    'log10': (math.log10, 1),
    'sqrt': (math.sqrt, 1),
    'abs': (abs, 1),
    'exp': (math.exp, 1),
    'sin': (math.sin, 1),
    'cos': (math.cos, 1),
    'pow': (math.pow, 2),
}

# Statistics used to check that an expression yields a finite number
VALIDATION_VALUE = 50.0
VALIDATION_STATS = {'min': 0.0, 'max': 100.0, 'mean': 50.0, 'std': 25.0}


class Token(NamedTuple):
    kind: str
    text: str
    pos: int


_TOKEN_RE = re.compile(r"""
    (?P<ws>\s+)
  | (?P<number>(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)
  | (?P<name>[A-Za-z_][A-Za-z_0-9]*)
  | (?P<op>[-+*/^])
  | (?P<lparen>\()
  | (?P<rparen>\))
  | (?P<comma>,)
""", re.VERBOSE)


def tokenize(text: str) -> List[Token]:
    """
    Split an expression into tokens.

    Args:
        text: Expression source

    Returns:
        List of tokens, terminated by an ``end`` token

    Raises:
        ExpressionError: On any character outside the grammar
    """
    tokens = []
    pos = 0
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if match is None:
            raise ExpressionError(f"Unexpected character {text[pos]!r} at position {pos}")
        kind = match.lastgroup
        if kind != 'ws':
            tokens.append(Token(kind, match.group(), pos))
        pos = match.end()
    tokens.append(Token('end', '', len(text)))
    return tokens


# AST

@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class Variable:
    name: str


@dataclass(frozen=True)
class UnaryOp:
    op: str
    operand: 'Node'


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: 'Node'
    right: 'Node'


@dataclass(frozen=True)
class Call:
    func: str
    args: Tuple['Node', ...]


Node = Union[Number, Variable, UnaryOp, BinaryOp, Call]


class Parser:
    """
    Recursive-descent parser.

    Grammar, lowest precedence first::

        expr    := term (('+' | '-') term)*
        term    := unary (('*' | '/') unary)*
        unary   := ('+' | '-') unary | power
        power   := primary ('^' unary)?
        primary := NUMBER | NAME | NAME '(' expr (',' expr)* ')' | '(' expr ')'

    ``^`` is right-associative and binds tighter than unary minus, so
    ``-2^2`` is -4.
    """

    def __init__(self, text: str):
        self.text = text
        self.tokens = tokenize(text)
        self.pos = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.pos]

    def advance(self) -> Token:
        token = self.tokens[self.pos]
        self.pos += 1
        return token

    def expect(self, kind: str, message: str) -> Token:
        if self.current.kind != kind:
            raise ExpressionError(message)
        return self.advance()

    def parse(self) -> Node:
        if self.current.kind == 'end':
            raise ExpressionError("Expression cannot be empty")
        node = self.expr()
        if self.current.kind == 'rparen':
            raise ExpressionError("Unbalanced parentheses")
        if self.current.kind != 'end':
            raise ExpressionError(
                f"Unexpected {self.current.text!r} at position {self.current.pos}")
        return node

    def expr(self) -> Node:
        node = self.term()
        while self.current.kind == 'op' and self.current.text in '+-':
            op = self.advance().text
            node = BinaryOp(op, node, self.term())
        return node

    def term(self) -> Node:
        node = self.unary()
        while self.current.kind == 'op' and self.current.text in '*/':
            op = self.advance().text
            node = BinaryOp(op, node, self.unary())
        return node

    def unary(self) -> Node:
        if self.current.kind == 'op' and self.current.text in '+-':
            op = self.advance().text
            return UnaryOp(op, self.unary())
        return self.power()

    def power(self) -> Node:
        base = self.primary()
        if self.current.kind == 'op' and self.current.text == '^':
            self.advance()
            return BinaryOp('^', base, self.unary())
        return base

    def primary(self) -> Node:
        token = self.current

        if token.kind == 'number':
            self.advance()
            return Number(float(token.text))

        if token.kind == 'lparen':
            self.advance()
            node = self.expr()
            self.expect('rparen', "Unbalanced parentheses")
            return node

        if token.kind == 'name':
            self.advance()
            if self.current.kind == 'lparen':
                return self.call(token)
            if token.text in CONSTANTS:
                return Number(CONSTANTS[token.text])
            if token.text in VARIABLES:
                return Variable(token.text)
            if token.text in FUNCTIONS:
                raise ExpressionError(f"Function '{token.text}' must be called with parentheses")
            raise ExpressionError(f"Unknown name '{token.text}'")

        if token.kind == 'end':
            raise ExpressionError("Unexpected end of expression")
        raise ExpressionError(f"Unexpected {token.text!r} at position {token.pos}")

    def call(self, name_token: Token) -> Node:
        name = name_token.text
        if name not in FUNCTIONS:
            raise ExpressionError(f"Unknown function '{name}'")
        self.expect('lparen', "Expected '('")

        args = [self.expr()]
        while self.current.kind == 'comma':
            self.advance()
            args.append(self.expr())
        self.expect('rparen', "Unbalanced parentheses")

        arity = FUNCTIONS[name][1]
        if len(args) != arity:
            raise ExpressionError(
                f"Function '{name}' takes {arity} argument{'s' if arity != 1 else ''}, got {len(args)}")
        return Call(name, tuple(args))


@functools.lru_cache(maxsize=256)
def parse_expression(text: str) -> Node:
    """
    Parse an expression into an AST.

    Parsed trees are immutable, so results are cached per source string.

    Args:
        text: Expression source

    Returns:
        Root node of the AST

    Raises:
        ExpressionError: If the expression is not in the grammar
    """
    try:
        return Parser(text).parse()
    except RecursionError:
        raise ExpressionError("Expression is nested too deeply")


def _apply_binary(op: str, left: float, right: float) -> float:
    if op == '+':
        return left + right
    if op == '-':
        return left - right
    if op == '*':
        return left * right
    if op == '/':
        if right == 0:
            raise ExpressionError("Division by zero")
        return left / right
    # '^'
    return math.pow(left, right)


def evaluate(node: Union[Node, str], variables: Mapping[str, float]) -> float:
    """
    Evaluate an expression tree against bound variables.

    Args:
        node: AST root, or expression source to parse first
        variables: Values for the variables the tree references

    Returns:
        Result as a float; products of large finite numbers can still be inf

    Raises:
        ExpressionError: On unbound variables or math domain/overflow errors
    """
    if isinstance(node, str):
        node = parse_expression(node)

    try:
        return _evaluate(node, variables)
    except ExpressionError:
        raise
    except (ValueError, OverflowError) as e:
        raise ExpressionError(f"Math error: {e}") from e
    except RecursionError:
        raise ExpressionError("Expression is nested too deeply")


def _evaluate(node: Node, variables: Mapping[str, float]) -> float:
    if isinstance(node, Number):
        return node.value
    if isinstance(node, Variable):
        if node.name not in variables:
            raise ExpressionError(f"Variable '{node.name}' is not bound")
        return float(variables[node.name])
    if isinstance(node, UnaryOp):
        value = _evaluate(node.operand, variables)
        return -value if node.op == '-' else value
    if isinstance(node, BinaryOp):
        return _apply_binary(node.op,
                             _evaluate(node.left, variables),
                             _evaluate(node.right, variables))
    if isinstance(node, Call):
        func, _ = FUNCTIONS[node.func]
        return float(func(*[_evaluate(arg, variables) for arg in node.args]))
    raise ExpressionError(f"Unsupported node {node!r}")


def stats_variables(value: float, stats: Any) -> Dict[str, float]:
    """
    Build the variable bindings for a value and its column statistics.

    Args:
        value: The value bound to ``x``
        stats: ColumnStats, or a mapping with min/max/mean/std keys

    Returns:
        Variable bindings
    """
    if isinstance(stats, Mapping):
        bound = {name: float(stats[name]) for name in ('min', 'max', 'mean', 'std')}
    else:
        bound = {name: float(getattr(stats, name)) for name in ('min', 'max', 'mean', 'std')}
    bound['x'] = float(value)
    return bound


def evaluate_custom_transform(expression: str, value: float, stats: Any) -> float:
    """
    Evaluate a custom transform for one value.

    Evaluation failures and non-finite results fall back to the
    untransformed value.

    Args:
        expression: Expression source
        value: Value bound to ``x``
        stats: Column statistics bound to min/max/mean/std

    Returns:
        Transformed value, or ``value`` if the expression cannot produce one
    """
    try:
        result = evaluate(parse_expression(expression), stats_variables(value, stats))
    except ExpressionError as e:
        logger.warning(f"Error evaluating transform {expression!r} at x={value}: {e}")
        return value

    if not math.isfinite(result):
        logger.warning(f"Transform {expression!r} is not finite at x={value}")
        return value
    return result


def check_balanced_parentheses(expression: str) -> bool:
    balance = 0
    for char in expression:
        if char == '(':
            balance += 1
        elif char == ')':
            balance -= 1
            if balance < 0:
                return False
    return balance == 0


def validate_custom_transform(expression: str) -> Optional[str]:
    """
    Validate a custom transform expression.

    Args:
        expression: Expression source

    Returns:
        None if the expression is valid, otherwise a user-facing message
    """
    if not expression or not expression.strip():
        return "Expression cannot be empty"

    if not check_balanced_parentheses(expression):
        return "Unbalanced parentheses"

    try:
        tree = parse_expression(expression)
    except ExpressionError as e:
        return f"Invalid expression: {e}"

    try:
        result = evaluate(tree, stats_variables(VALIDATION_VALUE, VALIDATION_STATS))
    except ExpressionError:
        return "Expression produces invalid result"

    if not math.isfinite(result):
        return "Expression produces invalid result"
    return None
