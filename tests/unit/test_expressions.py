"""Tests for tag expression compilation, evaluation and caching."""

import inspect
import threading
from dataclasses import dataclass
from enum import Enum

import pytest

from measurepy.core.exceptions import (
    ExpressionCompileError,
    ExpressionEvaluationError,
)
from measurepy.core.expressions import (
    EvaluationContext,
    ExpressionResolver,
    compile_expression,
    render_tag_value,
    validate_expressions,
)
from measurepy.core.models import (
    CallMetadata,
    Failure,
    InterceptedCall,
    Success,
    TagFallback,
    TagSpec,
)

pytestmark = [pytest.mark.core, pytest.mark.tier(1)]


@dataclass
class User:
    id: str
    tier: str = "gold"


class Currency(Enum):
    USD = "USD"


class InsufficientFunds(Exception):
    def __init__(self, code: str) -> None:
        super().__init__(code)
        self.code = code


def charge(amount: int, currency: str, note: str = "none") -> None:
    """Sample target for binding parameter names."""


def make_context(
    *args: object,
    outcome: Success | Failure | None = None,
    **kwargs: object,
) -> EvaluationContext:
    metadata = CallMetadata(
        function_name="charge",
        declaring_type="PaymentService",
        signature=inspect.signature(charge),
    )
    call = InterceptedCall(metadata=metadata, args=args, kwargs=kwargs)
    return EvaluationContext.for_call(call, outcome or Success(None))


class TestCompileExpression:
    """Tests for compile_expression()."""

    def test_compiles_variable_reference(self) -> None:
        """A #name reference compiles."""
        compiled = compile_expression("#currency")
        assert compiled.source == "#currency"

    @pytest.mark.parametrize(
        "source",
        [
            "",
            "   ",
            "#",
            "#args[",
            "currency",
            "#user.__class__",
            "__import__('os')",
            "lambda: 1",
            "[x for x in #args]",
            "#args[0] if",
        ],
    )
    def test_rejects_malformed_or_disallowed_sources(self, source: str) -> None:
        """Malformed or disallowed sources raise ExpressionCompileError."""
        with pytest.raises(ExpressionCompileError):
            compile_expression(source)

    def test_hash_inside_string_literal_is_not_a_variable(self) -> None:
        """'#' inside a quoted literal stays literal."""
        compiled = compile_expression("'#' + #currency")
        assert compiled.evaluate(make_context(1, "USD")) == "#USD"

    def test_compile_error_carries_source(self) -> None:
        """The error names the offending source."""
        with pytest.raises(ExpressionCompileError) as info:
            compile_expression("open('x')")
        assert info.value.source == "open('x')"


class TestEvaluation:
    """Tests for CompiledExpression.evaluate()."""

    def test_positional_argument_by_index(self) -> None:
        """#args[1] selects the second argument."""
        assert compile_expression("#args[1]").evaluate(make_context(42, "USD")) == "USD"

    def test_positional_aliases(self) -> None:
        """#p0, #a0 and #arg0 all alias the first argument."""
        context = make_context(42, "USD")
        for source in ("#p0", "#a0", "#arg0"):
            assert compile_expression(source).evaluate(context) == 42

    def test_parameter_by_name(self) -> None:
        """Bound parameter names are variables."""
        compiled = compile_expression("#currency")
        assert compiled.evaluate(make_context(42, "USD")) == "USD"

    def test_keyword_arguments_appear_in_declaration_order(self) -> None:
        """#args follows declaration order even when passed by keyword."""
        context = make_context(currency="EUR", amount=7)
        assert compile_expression("#args[1]").evaluate(context) == "EUR"

    def test_defaults_are_applied(self) -> None:
        """Parameters left at their default are still visible."""
        assert compile_expression("#note").evaluate(make_context(1, "USD")) == "none"

    def test_attribute_access_and_method_call(self) -> None:
        """Attributes and method calls on values are allowed."""
        context = make_context(User("u-1"), "usd")
        assert compile_expression("#amount.id").evaluate(context) == "u-1"
        assert compile_expression("#currency.upper()").evaluate(context) == "USD"

    def test_mapping_keys_reachable_by_attribute(self) -> None:
        """Mapping keys can be read with attribute syntax."""
        context = make_context({"region": "eu"}, "USD")
        assert compile_expression("#amount.region").evaluate(context) == "eu"

    def test_conditional_and_comparison(self) -> None:
        """Conditional expressions and comparisons evaluate."""
        source = "'large' if #amount > 100 else 'small'"
        assert compile_expression(source).evaluate(make_context(500, "USD")) == "large"
        assert compile_expression(source).evaluate(make_context(5, "USD")) == "small"

    def test_allowed_builtin_function(self) -> None:
        """Whitelisted builtins can be called."""
        compiled = compile_expression("len(#currency)")
        assert compiled.evaluate(make_context(1, "USD")) == 3

    def test_result_available_on_success(self) -> None:
        """#result is the return value of a successful call."""
        context = make_context(1, "USD", outcome=Success({"status": "ok"}))
        assert compile_expression("#result.status").evaluate(context) == "ok"

    def test_error_available_on_failure(self) -> None:
        """#error is the raised exception of a failed call."""
        context = make_context(1, "USD", outcome=Failure(InsufficientFunds("E42")))
        assert compile_expression("#error.code").evaluate(context) == "E42"

    def test_result_missing_on_failure(self) -> None:
        """#result is absent when the call failed."""
        context = make_context(1, "USD", outcome=Failure(RuntimeError("boom")))
        with pytest.raises(ExpressionEvaluationError):
            compile_expression("#result").evaluate(context)

    def test_method_and_class_metadata(self) -> None:
        """#method and #class expose call metadata."""
        context = make_context(1, "USD")
        assert compile_expression("#method").evaluate(context) == "charge"
        assert compile_expression("#class").evaluate(context) == "PaymentService"

    def test_runtime_error_is_wrapped(self) -> None:
        """Errors raised while evaluating become ExpressionEvaluationError."""
        with pytest.raises(ExpressionEvaluationError) as info:
            compile_expression("#args[5]").evaluate(make_context(1, "USD"))
        assert "IndexError" in info.value.reason


class TestRenderTagValue:
    """Tests for render_tag_value()."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("USD", "USD"),
            (42, "42"),
            (True, "true"),
            (False, "false"),
            (Currency.USD, "USD"),
            (None, None),
            ("  ", None),
        ],
    )
    def test_renders_values(self, value: object, expected: str | None) -> None:
        """Values render to strings; None and blank strings are omitted."""
        assert render_tag_value(value) == expected


class TestExpressionResolver:
    """Tests for ExpressionResolver."""

    def test_compiles_each_source_once(self) -> None:
        """Repeated compile() returns the cached object."""
        resolver = ExpressionResolver()
        first = resolver.compile("#currency")
        assert resolver.compile("#currency") is first
        assert len(resolver) == 1

    def test_compile_failure_is_cached_and_reraised(self) -> None:
        """A malformed source raises on every use but is parsed once."""
        resolver = ExpressionResolver()
        for _ in range(2):
            with pytest.raises(ExpressionCompileError):
                resolver.compile("#args[")
        assert len(resolver) == 1

    def test_concurrent_first_use_keeps_one_entry(self) -> None:
        """Threads racing on first use all see the same compiled object."""
        resolver = ExpressionResolver()
        results = []
        barrier = threading.Barrier(16)

        def worker() -> None:
            barrier.wait()
            results.append(resolver.compile("#args[0]"))

        threads = [threading.Thread(target=worker) for _ in range(16)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(resolver) == 1
        assert all(r is results[0] for r in results)

    def test_resolves_static_and_dynamic_tags(self) -> None:
        """Static tags come first, then dynamic tags."""
        spec = TagSpec.of({"kind": "payment"}, {"currency": "#args[1]"})
        tags = ExpressionResolver().resolve(spec, make_context(42, "USD"))
        assert list(tags.items()) == [("kind", "payment"), ("currency", "USD")]

    def test_is_deterministic_and_context_sensitive(self) -> None:
        """Same context gives the same values; different args give different ones."""
        resolver = ExpressionResolver()
        spec = TagSpec.of(expressions={"currency": "#currency"})
        assert resolver.resolve(spec, make_context(1, "USD")) == resolver.resolve(
            spec, make_context(1, "USD")
        )
        assert resolver.resolve(spec, make_context(1, "EUR")) == {"currency": "EUR"}

    def test_failing_tag_uses_placeholder_by_default(self) -> None:
        """A failing tag gets the placeholder and the others still resolve."""
        spec = TagSpec.of(
            expressions={"status": "#result.status", "currency": "#currency"}
        )
        context = make_context(1, "USD", outcome=Failure(RuntimeError("boom")))
        tags = ExpressionResolver().resolve(spec, context)
        assert tags == {"status": "unknown", "currency": "USD"}

    def test_failing_tag_omitted_with_omit_policy(self) -> None:
        """With OMIT the failing tag is dropped."""
        spec = TagSpec.of(
            expressions={"status": "#result.status", "currency": "#currency"}
        )
        context = make_context(1, "USD", outcome=Failure(RuntimeError("boom")))
        tags = ExpressionResolver(TagFallback.OMIT).resolve(spec, context)
        assert tags == {"currency": "USD"}

    def test_custom_placeholder(self) -> None:
        """set_tag_fallback() changes the placeholder."""
        resolver = ExpressionResolver()
        resolver.set_tag_fallback(TagFallback.PLACEHOLDER, "n/a")
        spec = TagSpec.of(expressions={"missing": "#nope"})
        assert resolver.resolve(spec, make_context(1, "USD")) == {"missing": "n/a"}

    def test_malformed_expression_affects_only_its_tag(self) -> None:
        """A compile error falls back for that tag only."""
        spec = TagSpec(expressions={"bad": "#args[", "currency": "#currency"})
        resolver = ExpressionResolver(TagFallback.OMIT)
        tags = resolver.resolve(spec, make_context(1, "USD"))
        assert tags == {"currency": "USD"}

    def test_unrenderable_value_falls_back(self) -> None:
        """A value whose str() raises is treated as a failed tag."""

        class Opaque:
            def __str__(self) -> str:
                raise RuntimeError("no repr")

        spec = TagSpec.of(expressions={"obj": "#amount", "currency": "#currency"})
        tags = ExpressionResolver().resolve(spec, make_context(Opaque(), "USD"))
        assert tags == {"obj": "unknown", "currency": "USD"}

    def test_none_value_omits_tag(self) -> None:
        """An expression evaluating to None drops its tag."""
        spec = TagSpec.of(expressions={"result": "#result"})
        assert ExpressionResolver().resolve(spec, make_context(1, "USD")) == {}


class TestValidateExpressions:
    """Tests for validate_expressions()."""

    def test_accepts_valid_spec(self) -> None:
        """Valid expressions pass."""
        validate_expressions(TagSpec.of(expressions=["user=#userId"]))

    def test_rejects_invalid_spec(self) -> None:
        """The first malformed expression raises."""
        with pytest.raises(ExpressionCompileError):
            validate_expressions(TagSpec.of(expressions={"user": "#user."}))
