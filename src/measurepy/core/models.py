"""Core domain models for measured calls."""

import inspect
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

EXCEPTION_TAG = "exception"


class Outcome(str, Enum):
    """Closed set of outcome labels for a completed call."""

    SUCCESS = "success"
    ERROR = "error"


class TagFallback(str, Enum):
    """What to do with a tag whose expression fails to evaluate."""

    OMIT = "omit"
    PLACEHOLDER = "placeholder"


@dataclass(frozen=True)
class CallMetadata:
    """Static identity of an intercepted callable.

    Attributes:
        function_name: Name of the function or method.
        declaring_type: Class name for methods, module name otherwise.
        signature: Signature used to bind argument names.
        has_receiver: True when the first parameter is ``self`` or ``cls``.
    """

    function_name: str
    declaring_type: str
    signature: inspect.Signature | None = None
    has_receiver: bool = False

    @property
    def default_metric_name(self) -> str:
        return f"{self.declaring_type}.{self.function_name}"


@dataclass(frozen=True)
class InterceptedCall:
    """Snapshot of one invocation.

    Attributes:
        metadata: Identity of the called function.
        args: Positional arguments, receiver excluded.
        kwargs: Keyword arguments.
        receiver: The bound ``self``/``cls`` or None.
        started_at: Monotonic clock reading taken when interception began.
    """

    metadata: CallMetadata
    args: tuple[Any, ...]
    kwargs: Mapping[str, Any]
    receiver: Any = None
    started_at: float = 0.0


@dataclass(frozen=True)
class Success:
    """A call that returned normally."""

    value: Any = None


@dataclass(frozen=True)
class Failure:
    """A call that raised."""

    error: BaseException


CallOutcome = Success | Failure


def _parse_expressions(
    expressions: Mapping[str, str] | Iterable[str] | None,
) -> dict[str, str]:
    """Accept a mapping or legacy ``"key=expression"`` strings."""
    if expressions is None:
        return {}
    if isinstance(expressions, Mapping):
        return {str(k).strip(): str(v).strip() for k, v in expressions.items()}
    parsed: dict[str, str] = {}
    for item in expressions:
        key, sep, source = item.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Expected 'key=expression', got {item!r}")
        parsed[key.strip()] = source.strip()
    return parsed


@dataclass(frozen=True)
class TagSpec:
    """Static tags and dynamic tag expressions declared for one function.

    Attributes:
        static: Fixed tag values.
        expressions: Tag name to expression source.
    """

    static: Mapping[str, str] = field(default_factory=dict)
    expressions: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "static", MappingProxyType(dict(self.static)))
        object.__setattr__(
            self, "expressions", MappingProxyType(dict(self.expressions))
        )

    @classmethod
    def of(
        cls,
        tags: Mapping[str, str] | None = None,
        expressions: Mapping[str, str] | Iterable[str] | None = None,
    ) -> "TagSpec":
        """Build a TagSpec from decorator-style arguments.

        Static tags with a blank key or value are dropped.
        """
        static = {
            str(k).strip(): str(v).strip()
            for k, v in (tags or {}).items()
            if v is not None and str(k).strip() and str(v).strip()
        }
        return cls(static=static, expressions=_parse_expressions(expressions))


@dataclass(frozen=True)
class MeasureSpec:
    """Per-function measurement declaration.

    Attributes:
        name: Metric name. Empty means ``DeclaringType.function``.
        tags: Static and dynamic tags.
        record_exceptions: Add an ``exception`` tag with the error class name.
            While on, ``exception`` can not be declared as a tag.
        long_task: Record under ``<name>.long-task``.
    """

    name: str = ""
    tags: TagSpec = field(default_factory=TagSpec)
    record_exceptions: bool = True
    long_task: bool = False

    def __post_init__(self) -> None:
        declared = {*self.tags.static, *self.tags.expressions}
        if self.record_exceptions and EXCEPTION_TAG in declared:
            raise ValueError(
                f"Tag {EXCEPTION_TAG!r} is reserved while record_exceptions is on"
            )

    def metric_name(self, metadata: CallMetadata) -> str:
        base = self.name.strip() or metadata.default_metric_name
        return f"{base}.long-task" if self.long_task else base


@dataclass(frozen=True)
class Measurement:
    """A single recorded measurement.

    Attributes:
        metric_name: Metric name.
        tags: Ordered tag key/value pairs.
        duration: Elapsed time in seconds.
        outcome: Outcome label.
    """

    metric_name: str
    tags: tuple[tuple[str, str], ...]
    duration: float
    outcome: Outcome

    @property
    def tag_dict(self) -> dict[str, str]:
        return dict(self.tags)


@dataclass(frozen=True)
class MetricSample:
    """A single exported metric sample.

    Attributes:
        name: Metric name (e.g., charge_duration_seconds).
        timestamp: Unix timestamp in seconds.
        value: The metric value.
        labels: Key-value pairs for metric dimensions.
    """

    name: str
    timestamp: float
    value: float
    labels: dict[str, str] = field(default_factory=dict)
