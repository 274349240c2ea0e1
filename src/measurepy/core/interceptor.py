"""Call interceptor: measures one wrapped call per invocation.

The interceptor brackets the wrapped call with a timer, classifies the
outcome, resolves tags and records exactly one measurement. The wrapped
call's return value or exception always reaches the caller unchanged.
Failures inside the instrumentation are logged and swallowed.
"""

import logging
import time
from collections.abc import AsyncGenerator, Awaitable, Callable, Generator
from typing import Any, TypeVar

from measurepy.core.exceptions import InvalidStateError, SinkUnavailableError
from measurepy.core.expressions import EvaluationContext, ExpressionResolver
from measurepy.core.models import (
    EXCEPTION_TAG,
    CallMetadata,
    CallOutcome,
    Failure,
    InterceptedCall,
    Measurement,
    MeasureSpec,
    Success,
    TagFallback,
)
from measurepy.core.outcome import classify, error_category
from measurepy.core.ports import MetricsSinkPort
from measurepy.core.recorder import MeasurementRecorder, TimerHandle

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MeasureInterceptor:
    """Orchestrates timing, outcome classification, tag resolution and recording."""

    def __init__(
        self,
        sink: MetricsSinkPort,
        resolver: ExpressionResolver | None = None,
        clock: Callable[[], float] = time.perf_counter,
        tag_fallback: TagFallback = TagFallback.PLACEHOLDER,
        placeholder: str = "unknown",
        enabled: bool = True,
    ) -> None:
        """Initialize the interceptor.

        Args:
            sink: Metrics sink receiving one record per call.
            resolver: Expression resolver to share. A new one is created
                      with the given fallback settings when omitted.
            clock: Monotonic clock for the recorder.
            tag_fallback: Policy for tags whose expression fails.
            placeholder: Tag value used by the PLACEHOLDER policy.
            enabled: When False, calls pass straight through unmeasured.
        """
        self.resolver = resolver or ExpressionResolver(tag_fallback, placeholder)
        self.recorder = MeasurementRecorder(sink, clock=clock)
        self.enabled = enabled

    @property
    def sink(self) -> MetricsSinkPort:
        return self.recorder.sink

    def set_enabled(self, enabled: bool) -> None:
        """Set whether calls are measured.

        Args:
            enabled: True to measure calls, False to pass them through.
        """
        self.enabled = enabled

    def set_tag_fallback(
        self, fallback: TagFallback, placeholder: str | None = None
    ) -> None:
        """Set the policy for tags whose expression fails.

        Args:
            fallback: TagFallback.OMIT drops the tag, TagFallback.PLACEHOLDER
                      keeps it with the placeholder value.
            placeholder: New placeholder value (unchanged when None).
        """
        self.resolver.set_tag_fallback(fallback, placeholder)

    def intercept(
        self,
        metadata: CallMetadata,
        spec: MeasureSpec,
        wrapped_call: Callable[..., T],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """Invoke ``wrapped_call`` once and record its measurement.

        Returns:
            Whatever ``wrapped_call`` returned.

        Raises:
            Whatever ``wrapped_call`` raised, unchanged.
        """
        if not self.enabled:
            return wrapped_call(*args, **kwargs)
        call, handle = self._begin(metadata, spec, args, kwargs)
        try:
            result = wrapped_call(*args, **kwargs)
        except BaseException as exc:
            self._complete(call, spec, handle, Failure(exc))
            raise
        self._complete(call, spec, handle, Success(result))
        return result

    async def intercept_async(
        self,
        metadata: CallMetadata,
        spec: MeasureSpec,
        wrapped_call: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """Coroutine variant of intercept(); the timer spans the awaited call."""
        if not self.enabled:
            return await wrapped_call(*args, **kwargs)
        call, handle = self._begin(metadata, spec, args, kwargs)
        try:
            result = await wrapped_call(*args, **kwargs)
        except BaseException as exc:
            self._complete(call, spec, handle, Failure(exc))
            raise
        self._complete(call, spec, handle, Success(result))
        return result

    def intercept_generator(
        self,
        metadata: CallMetadata,
        spec: MeasureSpec,
        wrapped_call: Callable[..., Generator[Any, Any, T]],
        *args: Any,
        **kwargs: Any,
    ) -> Generator[Any, Any, T]:
        """Generator variant of intercept(); the timer spans the iteration.

        Timing starts on the first ``next()`` and stops when the generator
        is exhausted, raises or is closed. Closing early counts as success.
        """
        if not self.enabled:
            return (yield from wrapped_call(*args, **kwargs))
        call, handle = self._begin(metadata, spec, args, kwargs)
        try:
            result = yield from wrapped_call(*args, **kwargs)
        except GeneratorExit:
            self._complete(call, spec, handle, Success(None))
            raise
        except BaseException as exc:
            self._complete(call, spec, handle, Failure(exc))
            raise
        self._complete(call, spec, handle, Success(result))
        return result

    async def intercept_async_generator(
        self,
        metadata: CallMetadata,
        spec: MeasureSpec,
        wrapped_call: Callable[..., AsyncGenerator[T, None]],
        *args: Any,
        **kwargs: Any,
    ) -> AsyncGenerator[T, None]:
        """Async generator variant of intercept_generator().

        Items are forwarded with ``async for``; values passed to ``asend()``
        do not reach the wrapped generator.
        """
        stream = wrapped_call(*args, **kwargs)
        if not self.enabled:
            async for item in stream:
                yield item
            return
        call, handle = self._begin(metadata, spec, args, kwargs)
        try:
            async for item in stream:
                yield item
        except GeneratorExit:
            self._complete(call, spec, handle, Success(None))
            await stream.aclose()
            raise
        except BaseException as exc:
            self._complete(call, spec, handle, Failure(exc))
            raise
        self._complete(call, spec, handle, Success(None))

    def _begin(
        self,
        metadata: CallMetadata,
        spec: MeasureSpec,
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> tuple[InterceptedCall, TimerHandle]:
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Measuring %s", spec.metric_name(metadata))
        receiver = None
        if metadata.has_receiver and args:
            receiver, args = args[0], args[1:]
        handle = self.recorder.start()
        call = InterceptedCall(
            metadata=metadata,
            args=args,
            kwargs=kwargs,
            receiver=receiver,
            started_at=handle.started_at,
        )
        return call, handle

    def _resolve_tags(
        self, call: InterceptedCall, spec: MeasureSpec, outcome: CallOutcome
    ) -> dict[str, str]:
        if spec.tags.expressions:
            context = EvaluationContext.for_call(call, outcome)
            tags = self.resolver.resolve(spec.tags, context)
        else:
            tags = dict(spec.tags.static)
        category = error_category(outcome)
        if spec.record_exceptions and category is not None:
            tags[EXCEPTION_TAG] = category
        return tags

    def _complete(
        self,
        call: InterceptedCall,
        spec: MeasureSpec,
        handle: TimerHandle,
        outcome: CallOutcome,
    ) -> Measurement | None:
        metric_name = spec.metric_name(call.metadata)
        label = classify(outcome)
        try:
            tags = self._resolve_tags(call, spec, outcome)
        except Exception:
            logger.exception("Tag resolution failed for %s", metric_name)
            tags = dict(spec.tags.static)
        try:
            return self.recorder.stop(handle, metric_name, tags, label)
        except SinkUnavailableError:
            logger.exception("Dropping measurement for %s", metric_name)
        except InvalidStateError:
            logger.exception("Timer misuse while measuring %s", metric_name)
        except Exception:
            logger.exception("Unexpected failure recording %s", metric_name)
        return None


_DEFAULT_INTERCEPTOR: MeasureInterceptor | None = None


def configure(sink: MetricsSinkPort, **options: Any) -> MeasureInterceptor:
    """Create the process-wide interceptor used by ``@measured`` by default.

    Call once at startup. Calling again replaces the previous interceptor,
    including its expression cache.

    Args:
        sink: Metrics sink for all default-measured calls.
        **options: Keyword arguments forwarded to MeasureInterceptor.

    Returns:
        The new default interceptor.
    """
    global _DEFAULT_INTERCEPTOR
    _DEFAULT_INTERCEPTOR = MeasureInterceptor(sink, **options)
    return _DEFAULT_INTERCEPTOR


def get_interceptor() -> MeasureInterceptor | None:
    """Return the process-wide interceptor, or None if not configured."""
    return _DEFAULT_INTERCEPTOR


def reset() -> None:
    """Forget the process-wide interceptor (used by tests)."""
    global _DEFAULT_INTERCEPTOR
    _DEFAULT_INTERCEPTOR = None
