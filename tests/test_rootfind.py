"""Tests for pyvic.rootfind bracket search."""

import math

import pytest

from pyvic.exceptions import NonConvergenceError
from pyvic.rootfind import bracket_root


class TestBracketRoot:
    """Tests for bracket_root()."""

    def test_root_inside_initial_interval(self) -> None:
        """A root already bracketed is refined directly."""
        root = bracket_root(lambda t: t - 2.5, 0.0, 5.0, 1.0)

        assert root == pytest.approx(2.5, abs=1e-6)

    def test_expands_toward_root(self) -> None:
        """The interval grows outward until the sign changes."""
        root = bracket_root(lambda t: t + 12.0, 0.0, 1.0, 2.0)

        assert root == pytest.approx(-12.0, abs=1e-6)

    def test_respects_upper_limit(self) -> None:
        """Expansion stops at the hard limit and the other end moves instead."""
        root = bracket_root(lambda t: t + 3.0, 1.0, 2.0, 1.0, upper_limit=1.5)

        assert root == pytest.approx(-3.0, abs=1e-6)

    def test_raises_when_no_sign_change(self) -> None:
        """A residual without a root exhausts the expansions."""
        with pytest.raises(NonConvergenceError) as exc_info:
            bracket_root(lambda t: t * t + 1.0, -1.0, 1.0, 1.0, max_tries=5, variable="test_temperature")

        assert exc_info.value.variable == "test_temperature"
        assert len(exc_info.value.bracket) == 2

    def test_raises_on_non_finite_residual(self) -> None:
        """NaN residuals are reported instead of silently searched."""
        with pytest.raises(NonConvergenceError, match="not finite"):
            bracket_root(lambda t: math.nan, 0.0, 1.0, 1.0)

    def test_context_attached_to_error(self) -> None:
        """Caller context travels with the error."""
        with pytest.raises(NonConvergenceError) as exc_info:
            bracket_root(lambda t: 1.0, 0.0, 1.0, 1.0, max_tries=2, context={"tile": 3})

        assert exc_info.value.context["tile"] == 3
        assert "tile=3" in str(exc_info.value)
