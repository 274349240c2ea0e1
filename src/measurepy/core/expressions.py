"""Tag expression compilation, evaluation and caching.

Expressions are a small, SpEL-flavoured subset of Python expression syntax.
Variables are referenced with a ``#`` prefix::

    #args[1]                 second positional argument
    #currency.upper()        bound parameter by name
    #result.status           return value (successful calls only)
    #error.code              raised error (failed calls only)
    #method / #class         function and declaring type names

Sources are parsed with :mod:`ast` and checked against an allow-list of node
types before they are cached. Evaluation walks the checked tree directly.
"""

import ast
import logging
import operator
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from measurepy.core.exceptions import (
    ExpressionCompileError,
    ExpressionEvaluationError,
)
from measurepy.core.models import (
    CallOutcome,
    Failure,
    InterceptedCall,
    Success,
    TagFallback,
    TagSpec,
)

logger = logging.getLogger(__name__)

_VAR_PREFIX = "__var_"

# A quoted string literal, or a '#' optionally followed by an identifier
_TOKEN = re.compile(r"""('(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")|#([A-Za-z_]\w*)?""")

_FUNCTIONS: dict[str, Callable[..., Any]] = {
    "len": len,
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
    "abs": abs,
    "min": min,
    "max": max,
    "round": round,
}

_BINARY_OPS: dict[type[ast.operator], Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
}

_UNARY_OPS: dict[type[ast.unaryop], Callable[[Any], Any]] = {
    ast.Not: operator.not_,
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
}

_COMPARE_OPS: dict[type[ast.cmpop], Callable[[Any, Any], Any]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}

_ALLOWED_NODES: tuple[type[ast.AST], ...] = (
    ast.Expression,
    ast.Constant,
    ast.Name,
    ast.Load,
    ast.Attribute,
    ast.Subscript,
    ast.Slice,
    ast.Compare,
    ast.BoolOp,
    ast.And,
    ast.Or,
    ast.BinOp,
    ast.UnaryOp,
    ast.IfExp,
    ast.Call,
    ast.keyword,
    ast.Tuple,
    ast.List,
    *_BINARY_OPS,
    *_UNARY_OPS,
    *_COMPARE_OPS,
)


class _UndefinedVariable(LookupError):
    pass


def _translate(source: str) -> str:
    """Rewrite ``#name`` references into plain identifiers."""

    def replace(match: re.Match[str]) -> str:
        if match.group(1) is not None:
            return match.group(1)
        if match.group(2) is None:
            raise ExpressionCompileError(source, "'#' must be followed by a name")
        return _VAR_PREFIX + match.group(2)

    return _TOKEN.sub(replace, source)


def _check_node(source: str, node: ast.AST) -> None:
    if not isinstance(node, _ALLOWED_NODES):
        raise ExpressionCompileError(
            source, f"{type(node).__name__} is not allowed in tag expressions"
        )
    if isinstance(node, ast.Name):
        if not node.id.startswith(_VAR_PREFIX) and node.id not in _FUNCTIONS:
            raise ExpressionCompileError(
                source, f"unknown name {node.id!r}, variables are written as #name"
            )
    elif isinstance(node, ast.Attribute) and node.attr.startswith("_"):
        raise ExpressionCompileError(
            source, f"private attribute {node.attr!r} is not accessible"
        )
    elif isinstance(node, ast.keyword) and node.arg is None:
        raise ExpressionCompileError(source, "** arguments are not allowed")


def _get_attribute(obj: Any, name: str) -> Any:
    if isinstance(obj, Mapping) and name in obj:
        return obj[name]
    return getattr(obj, name)


def _evaluate(node: ast.AST, variables: Mapping[str, Any]) -> Any:
    if isinstance(node, ast.Constant):
        return node.value
    if isinstance(node, ast.Name):
        if node.id in _FUNCTIONS:
            return _FUNCTIONS[node.id]
        name = node.id[len(_VAR_PREFIX) :]
        if name not in variables:
            raise _UndefinedVariable(f"#{name} is not available")
        return variables[name]
    if isinstance(node, ast.Attribute):
        return _get_attribute(_evaluate(node.value, variables), node.attr)
    if isinstance(node, ast.Subscript):
        return _evaluate(node.value, variables)[_evaluate(node.slice, variables)]
    if isinstance(node, ast.Slice):
        return slice(
            *(
                None if part is None else _evaluate(part, variables)
                for part in (node.lower, node.upper, node.step)
            )
        )
    if isinstance(node, ast.BoolOp):
        is_and = isinstance(node.op, ast.And)
        value: Any = None
        for operand in node.values:
            value = _evaluate(operand, variables)
            if bool(value) is not is_and:
                return value
        return value
    if isinstance(node, ast.Compare):
        left = _evaluate(node.left, variables)
        for op, comparator in zip(node.ops, node.comparators, strict=True):
            right = _evaluate(comparator, variables)
            if not _COMPARE_OPS[type(op)](left, right):
                return False
            left = right
        return True
    if isinstance(node, ast.BinOp):
        return _BINARY_OPS[type(node.op)](
            _evaluate(node.left, variables), _evaluate(node.right, variables)
        )
    if isinstance(node, ast.UnaryOp):
        return _UNARY_OPS[type(node.op)](_evaluate(node.operand, variables))
    if isinstance(node, ast.IfExp):
        if _evaluate(node.test, variables):
            return _evaluate(node.body, variables)
        return _evaluate(node.orelse, variables)
    if isinstance(node, ast.Call):
        func = _evaluate(node.func, variables)
        args = [_evaluate(arg, variables) for arg in node.args]
        kwargs = {kw.arg: _evaluate(kw.value, variables) for kw in node.keywords}
        return func(*args, **kwargs)
    if isinstance(node, ast.Tuple):
        return tuple(_evaluate(elt, variables) for elt in node.elts)
    if isinstance(node, ast.List):
        return [_evaluate(elt, variables) for elt in node.elts]
    raise TypeError(f"unsupported node {type(node).__name__}")


def _bind_arguments(
    call: InterceptedCall,
) -> tuple[tuple[Any, ...], dict[str, Any]]:
    """Return arguments in declaration order and by parameter name.

    Falls back to the raw positional arguments when the call does not bind
    against the recorded signature.
    """
    metadata = call.metadata
    if metadata.signature is None:
        return call.args, {}
    full_args = (call.receiver, *call.args) if metadata.has_receiver else call.args
    try:
        bound = metadata.signature.bind(*full_args, **call.kwargs)
    except TypeError:
        logger.debug("Cannot bind arguments for %s", metadata.function_name)
        return call.args, {}
    bound.apply_defaults()

    ordered: list[Any] = []
    named: dict[str, Any] = {}
    parameters = list(metadata.signature.parameters.values())
    if metadata.has_receiver:
        parameters = parameters[1:]
    for parameter in parameters:
        value = bound.arguments.get(parameter.name)
        named[parameter.name] = value
        if parameter.kind is parameter.VAR_POSITIONAL:
            ordered.extend(value or ())
        elif parameter.kind is not parameter.VAR_KEYWORD:
            ordered.append(value)
    return tuple(ordered), named


@dataclass(frozen=True)
class EvaluationContext:
    """Variables visible to tag expressions for one call."""

    variables: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def for_call(
        cls, call: InterceptedCall, outcome: CallOutcome
    ) -> "EvaluationContext":
        """Build the context for a completed call.

        Bound parameter names shadow the positional aliases and the
        ``#method``/``#class``/``#this`` entries, but never ``#result`` or
        ``#error``.
        """
        metadata = call.metadata
        ordered, named = _bind_arguments(call)
        variables: dict[str, Any] = {
            "args": ordered,
            "kwargs": dict(call.kwargs),
            "method": metadata.function_name,
            "class": metadata.declaring_type,
            "this": call.receiver,
        }
        for index, value in enumerate(ordered):
            variables[f"p{index}"] = value
            variables[f"a{index}"] = value
            variables[f"arg{index}"] = value
        variables.update(named)

        variables.pop("result", None)
        variables.pop("error", None)
        if isinstance(outcome, Success):
            variables["result"] = outcome.value
        elif isinstance(outcome, Failure):
            variables["error"] = outcome.error
        return cls(variables=variables)


@dataclass(frozen=True)
class CompiledExpression:
    """A checked expression tree, shared read-only between evaluations."""

    source: str
    tree: ast.Expression

    def evaluate(self, context: EvaluationContext) -> Any:
        """Evaluate against a call context.

        Raises:
            ExpressionEvaluationError: On any failure during evaluation.
        """
        try:
            return _evaluate(self.tree.body, context.variables)
        except _UndefinedVariable as exc:
            raise ExpressionEvaluationError(self.source, str(exc)) from exc
        except Exception as exc:
            raise ExpressionEvaluationError(
                self.source, f"{type(exc).__name__}: {exc}"
            ) from exc


def compile_expression(source: str) -> CompiledExpression:
    """Parse and check an expression without touching any cache.

    Raises:
        ExpressionCompileError: If the source is empty, malformed, or uses a
            construct outside the allowed subset.
    """
    if not source or not source.strip():
        raise ExpressionCompileError(source, "expression is empty")
    translated = _translate(source.strip())
    try:
        tree = ast.parse(translated, mode="eval")
    except SyntaxError as exc:
        raise ExpressionCompileError(source, exc.msg) from exc
    for node in ast.walk(tree):
        _check_node(source, node)
    return CompiledExpression(source=source, tree=tree)


def validate_expressions(tag_spec: TagSpec) -> None:
    """Compile every expression of a tag spec, raising on the first bad one."""
    for source in tag_spec.expressions.values():
        compile_expression(source)


def render_tag_value(value: Any) -> str | None:
    """Render an evaluated value as a tag string, or None to omit the tag."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        value = value.value
    rendered = str(value)
    return rendered if rendered.strip() else None


def _render(source: str, value: Any) -> str | None:
    try:
        return render_tag_value(value)
    except Exception as exc:
        raise ExpressionEvaluationError(
            source, f"cannot render {type(value).__name__}: {exc}"
        ) from exc


@dataclass(frozen=True)
class _CompileFailure:
    reason: str


class ExpressionResolver:
    """Resolves tag specs against call contexts with a compiled-expression cache.

    The cache lives as long as the resolver and is never evicted: distinct
    sources are bounded by the number of decorated functions. Inserts use
    ``dict.setdefault`` so concurrent first use keeps a single entry.
    """

    def __init__(
        self,
        fallback: TagFallback = TagFallback.PLACEHOLDER,
        placeholder: str = "unknown",
    ) -> None:
        """Initialize the resolver.

        Args:
            fallback: Policy for tags whose expression fails.
            placeholder: Value used by the PLACEHOLDER policy.
        """
        self._cache: dict[str, CompiledExpression | _CompileFailure] = {}
        self.fallback = TagFallback(fallback)
        self.placeholder = placeholder

    def set_tag_fallback(
        self, fallback: TagFallback, placeholder: str | None = None
    ) -> None:
        """Set the failure policy and optionally the placeholder value."""
        self.fallback = TagFallback(fallback)
        if placeholder is not None:
            self.placeholder = placeholder

    def __len__(self) -> int:
        return len(self._cache)

    def compile(self, source: str) -> CompiledExpression:
        """Return the cached compiled form of ``source``, compiling on first use."""
        entry = self._cache.get(source)
        if entry is None:
            try:
                entry = compile_expression(source)
            except ExpressionCompileError as exc:
                entry = _CompileFailure(exc.reason)
            entry = self._cache.setdefault(source, entry)
        if isinstance(entry, _CompileFailure):
            raise ExpressionCompileError(source, entry.reason)
        return entry

    def resolve(self, tag_spec: TagSpec, context: EvaluationContext) -> dict[str, str]:
        """Resolve static and dynamic tags.

        A failing expression never aborts resolution: its tag follows the
        fallback policy and the remaining tags are still resolved.
        """
        tags = dict(tag_spec.static)
        for name, source in tag_spec.expressions.items():
            try:
                value = self.compile(source).evaluate(context)
                rendered = _render(source, value)
            except (ExpressionCompileError, ExpressionEvaluationError) as exc:
                logger.warning("Tag %r could not be resolved: %s", name, exc)
                if self.fallback is TagFallback.PLACEHOLDER:
                    tags[name] = self.placeholder
                continue
            if rendered is not None:
                tags[name] = rendered
        return tags
