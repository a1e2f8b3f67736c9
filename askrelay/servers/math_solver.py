"""
Mathematical Expression Solver

Evaluates expressions with SymPy's parser rather than ``eval``.
Supports scientific calculator syntax including:
- Factorial notation: 5!
- Caret exponentiation: 2^16
- Degree notation: sin(30 degrees)
"""

import logging
import math
import re
from typing import Union

from sympy import N
from sympy.parsing.sympy_parser import (
    parse_expr,
    standard_transformations,
    implicit_multiplication_application,
    convert_xor,
    factorial_notation,
)

logger = logging.getLogger(__name__)

TRANSFORMATIONS = (
    standard_transformations
    + (implicit_multiplication_application,)
    + (convert_xor,)  # 2^16 -> 2**16
    + (factorial_notation,)  # 5! -> factorial(5)
)

Number = Union[int, float, str]


class ExpressionError(ValueError):
    """The expression could not be parsed or evaluated to a number."""


def preprocess_expression(expression: str) -> str:
    """
    Rewrite calculator conventions into SymPy syntax.

    - ``sin(30 degrees)`` -> ``sin((30 * pi / 180))``
    - ``ceil(x)`` -> ``ceiling(x)``
    """
    degree_pattern = r"(\d+(?:\.\d+)?)\s*(?:degrees?|deg)\b"
    expression = re.sub(degree_pattern, r"(\1 * pi / 180)", expression, flags=re.IGNORECASE)
    expression = re.sub(r"\bceil\b", "ceiling", expression)
    return expression


def evaluate(expression: str) -> Number:
    """
    Evaluate an expression to a JSON-friendly number.

    Whole numbers come back as ``int``, other reals as ``float`` and complex
    values as their string form (``"2.0*I"``).

    Raises:
        ExpressionError: The expression is empty, malformed or not numeric.
    """
    if not expression or not expression.strip():
        raise ExpressionError("expression is empty")

    try:
        expr = parse_expr(
            preprocess_expression(expression),
            transformations=TRANSFORMATIONS,
            evaluate=True,
        )
        value = N(expr)
        result = complex(value)
    except SyntaxError as e:
        raise ExpressionError(f"Syntax error: {e}") from e
    except (ValueError, TypeError) as e:
        raise ExpressionError(f"Cannot evaluate '{expression}': {e}") from e
    except Exception as e:
        logger.debug("Calculation error for '%s': %s", expression, e)
        raise ExpressionError(f"Calculation error: {e}") from e

    if result.imag != 0:
        return str(value)

    real = result.real
    if not math.isfinite(real):
        raise ExpressionError(f"Result of '{expression}' is not finite")
    if real.is_integer():
        return int(real)
    return real
