import pytest

from formula_graph.models import Formula, Variable
from formula_graph.pipeline import extract_formulas_from_text

WORKED_EXAMPLE = (
    "We define x as the input (1)\n"
    "$$y = f(x)$$ (2)\n"
    "Minimize the loss $$L = y^2$$ (3)"
)

SAMPLE_PAPER = """Formula Graphs for Scientific Papers
Jane Doe
Abstract
We study how formulas in scientific papers depend on each other.
1. Introduction
Neural networks are trained by minimizing a loss over parameters $\\theta$.
2. Method
We define the prediction as $\\hat{y} = W x + b$ for an input $x$.
$$\\mathcal{L}(\\theta) = \\sum_i (y_i - \\hat{y}_i)^2$$ (1)
Minimize the objective subject to the norm bound.
$$\\|W\\| \\leq c$$ (2)
3. Experiments
For example, with $W = I$ and $b = 0$ the prediction reduces to $\\hat{y} = x$.
"""


def make_formula(formula_id, symbols, role="unknown", section="Method", number=None, latex=None):
    return Formula(
        id=formula_id,
        latex=latex if latex is not None else " + ".join(symbols),
        type="equation" if number else "display",
        role=role,
        number=number,
        section=section,
        variables=[Variable(symbol=s, latex=s) for s in symbols],
    )


@pytest.fixture
def formula_factory():
    return make_formula


@pytest.fixture(scope="module")
def worked_extraction():
    return extract_formulas_from_text(WORKED_EXAMPLE)


@pytest.fixture(scope="module")
def sample_extraction():
    return extract_formulas_from_text(SAMPLE_PAPER)


@pytest.fixture
def worked_text():
    return WORKED_EXAMPLE


@pytest.fixture
def sample_text():
    return SAMPLE_PAPER
