"""The ``@measured`` decorator.

Wraps functions, methods, coroutine functions, generators and whole classes
so every call goes through a MeasureInterceptor. Generators are timed over
their whole iteration. Without an explicit ``interceptor`` the
process-wide one from :func:`measurepy.configure` is looked up at call time.
"""

import functools
import inspect
import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any, TypeVar, cast, overload

from measurepy.core.expressions import validate_expressions
from measurepy.core.interceptor import MeasureInterceptor, get_interceptor
from measurepy.core.models import CallMetadata, MeasureSpec, TagSpec

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

_RECEIVER_NAMES = frozenset({"self", "cls"})


def _declaring_type(func: Callable[..., Any]) -> str:
    owner, _, _ = func.__qualname__.rpartition(".")
    last = owner.rsplit(".", 1)[-1]
    if last and last != "<locals>":
        return last
    return func.__module__.rsplit(".", 1)[-1]


def _signature(func: Callable[..., Any]) -> inspect.Signature | None:
    try:
        return inspect.signature(func)
    except (TypeError, ValueError):
        return None


def call_metadata(
    func: Callable[..., Any],
    declaring_type: str | None = None,
    has_receiver: bool | None = None,
) -> CallMetadata:
    """Build CallMetadata for a function.

    Args:
        func: The undecorated function.
        declaring_type: Overrides the type name derived from ``__qualname__``.
        has_receiver: Overrides detection of a leading ``self``/``cls``.
    """
    signature = _signature(func)
    if has_receiver is None:
        params = list(signature.parameters.values()) if signature else []
        has_receiver = bool(params) and (
            params[0].name in _RECEIVER_NAMES
            and params[0].kind
            in (params[0].POSITIONAL_ONLY, params[0].POSITIONAL_OR_KEYWORD)
        )
    return CallMetadata(
        function_name=func.__name__,
        declaring_type=declaring_type or _declaring_type(func),
        signature=signature,
        has_receiver=has_receiver,
    )


def _wrap(
    func: F,
    spec: MeasureSpec,
    metadata: CallMetadata,
    interceptor: MeasureInterceptor | None,
) -> F:
    if inspect.iscoroutinefunction(func):

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            active = interceptor or get_interceptor()
            if active is None:
                logger.debug("No interceptor configured, %s not measured", func)
                return await func(*args, **kwargs)
            return await active.intercept_async(
                metadata, spec, func, *args, **kwargs
            )

        wrapper: Callable[..., Any] = async_wrapper
    elif inspect.isasyncgenfunction(func):

        @functools.wraps(func)
        def async_generator_wrapper(*args: Any, **kwargs: Any) -> Any:
            active = interceptor or get_interceptor()
            if active is None:
                logger.debug("No interceptor configured, %s not measured", func)
                return func(*args, **kwargs)
            return active.intercept_async_generator(
                metadata, spec, func, *args, **kwargs
            )

        wrapper = async_generator_wrapper
    elif inspect.isgeneratorfunction(func):

        @functools.wraps(func)
        def generator_wrapper(*args: Any, **kwargs: Any) -> Any:
            active = interceptor or get_interceptor()
            if active is None:
                logger.debug("No interceptor configured, %s not measured", func)
                return func(*args, **kwargs)
            return active.intercept_generator(metadata, spec, func, *args, **kwargs)

        wrapper = generator_wrapper
    else:

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            active = interceptor or get_interceptor()
            if active is None:
                logger.debug("No interceptor configured, %s not measured", func)
                return func(*args, **kwargs)
            return active.intercept(metadata, spec, func, *args, **kwargs)

        wrapper = sync_wrapper

    wrapper.__measured__ = spec  # type: ignore[attr-defined]
    return cast(F, wrapper)


def _is_measured(func: Any) -> bool:
    return getattr(func, "__measured__", None) is not None


def _measure_class(
    cls: type,
    name: str,
    tags: TagSpec,
    record_exceptions: bool,
    long_task: bool,
    interceptor: MeasureInterceptor | None,
) -> type:
    """Measure every public method defined directly on ``cls``."""
    for attr_name, attr in list(vars(cls).items()):
        if attr_name.startswith("_"):
            continue
        if isinstance(attr, staticmethod):
            func, has_receiver, rewrap = attr.__func__, False, staticmethod
        elif isinstance(attr, classmethod):
            func, has_receiver, rewrap = attr.__func__, True, classmethod
        elif inspect.isfunction(attr):
            func, has_receiver, rewrap = attr, True, None
        else:
            continue
        if _is_measured(func):
            continue
        spec = MeasureSpec(
            name=f"{name}.{attr_name}" if name else "",
            tags=tags,
            record_exceptions=record_exceptions,
            long_task=long_task,
        )
        metadata = call_metadata(func, cls.__name__, has_receiver)
        wrapped: Any = _wrap(func, spec, metadata, interceptor)
        setattr(cls, attr_name, rewrap(wrapped) if rewrap else wrapped)
    return cls


@overload
def measured(name: F) -> F: ...


@overload
def measured(
    name: str = "",
    *,
    tags: Mapping[str, str] | None = None,
    expressions: Mapping[str, str] | Iterable[str] | None = None,
    record_exceptions: bool = True,
    long_task: bool = False,
    interceptor: MeasureInterceptor | None = None,
) -> Callable[[F], F]: ...


def measured(
    name: Any = "",
    *,
    tags: Mapping[str, str] | None = None,
    expressions: Mapping[str, str] | Iterable[str] | None = None,
    record_exceptions: bool = True,
    long_task: bool = False,
    interceptor: MeasureInterceptor | None = None,
) -> Any:
    """Measure every call of the decorated function, method or class.

    Usable bare (``@measured``) or with arguments::

        @measured("charge", expressions={"currency": "#currency"})
        def charge(amount, currency): ...

    Args:
        name: Metric name. Defaults to ``DeclaringType.function``. On a class,
              each method records under ``<name>.<method>``.
        tags: Static tags added to every measurement.
        expressions: Dynamic tags, either ``{"tag": "#expr"}`` or
                     ``["tag=#expr", ...]``.
        record_exceptions: Add an ``exception`` tag with the error class name
                           to measurements of failed calls.
        long_task: Record under ``<name>.long-task``.
        interceptor: Interceptor to use instead of the configured default.

    Raises:
        ExpressionCompileError: If an expression is malformed. Raised at
            decoration time.
        ValueError: If ``exception`` is declared as a tag while
            ``record_exceptions`` is on.
    """
    if callable(name):
        return measured()(name)

    tag_spec = TagSpec.of(tags, expressions)
    validate_expressions(tag_spec)

    def decorator(target: Any) -> Any:
        if inspect.isclass(target):
            return _measure_class(
                target, name, tag_spec, record_exceptions, long_task, interceptor
            )
        spec = MeasureSpec(
            name=name,
            tags=tag_spec,
            record_exceptions=record_exceptions,
            long_task=long_task,
        )
        return _wrap(target, spec, call_metadata(target), interceptor)

    return decorator
