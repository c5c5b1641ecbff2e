from __future__ import annotations

import pytest

from instrument_gateway.app.core.expression import compile_expression
from instrument_gateway.app.core.gateway_exceptions import ExpressionError


def test_reference_divider_formula() -> None:
    expression = compile_expression("adcval * (vref / 256)")

    assert expression.evaluate(adcval=0, vref=5.0) == 0.0
    assert expression.evaluate(adcval=255, vref=5.0) == pytest.approx(4.98, abs=0.005)


def test_operators_and_precedence() -> None:
    expression = compile_expression("-(adcval - 10) * 2 + vref ** 2 - 7 // 2 + 7 % 4")

    assert expression.evaluate(adcval=20, vref=3) == pytest.approx(-20 + 9 - 3 + 3)


def test_integer_literals_evaluate_as_floats() -> None:
    assert compile_expression("adcval / 2").evaluate(adcval=3, vref=0) == 1.5


@pytest.mark.parametrize(
    "source",
    [
        "ADCval * vref",
        "adcval * voltage",
        "__import__('os').system('true')",
        "abs(adcval)",
        "adcval.real",
        "adcval > vref",
        "'text'",
        "True + adcval",
        "[adcval]",
        "adcval if vref else 0",
        "lambda: adcval",
    ],
)
def test_rejects_anything_outside_arithmetic(source: str) -> None:
    with pytest.raises(ExpressionError):
        compile_expression(source)


@pytest.mark.parametrize("source", ["", "   ", "adcval *", "(adcval"])
def test_rejects_empty_and_malformed(source: str) -> None:
    with pytest.raises(ExpressionError):
        compile_expression(source)


def test_division_by_zero_is_an_expression_error() -> None:
    expression = compile_expression("adcval / (vref - 5)")

    with pytest.raises(ExpressionError, match="Division by zero"):
        expression.evaluate(adcval=1, vref=5.0)


def test_complex_result_is_rejected() -> None:
    expression = compile_expression("(adcval - 300) ** 0.5")

    with pytest.raises(ExpressionError, match="complex"):
        expression.evaluate(adcval=10, vref=0)


def test_overflow_is_rejected() -> None:
    with pytest.raises(ExpressionError):
        compile_expression("10 ** 400").evaluate(adcval=0, vref=0)


def test_compiled_expression_equality_by_source() -> None:
    assert compile_expression("adcval + 1") == compile_expression(" adcval + 1 ")
    assert compile_expression("adcval + 1") != compile_expression("adcval + 2")
