"""
Unit tests for CAGR and XIRR calculations.

Pure calculation logic, no database or network. Expected values are chosen
so they can be checked by hand.
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from services.returns import (
    CashFlow,
    InvalidInputError,
    SolverStatus,
    build_cash_flows,
    calculate_cagr,
    calculate_cagr_from_dates,
    calculate_portfolio_xirr,
    calculate_stock_xirr,
    calculate_xirr,
    get_return_metric_type,
    solve_xirr,
)
from tests.conftest import NOW, YEAR, make_txn


# ==================== CAGR ====================

class TestCalculateCAGR:

    @pytest.mark.parametrize("begin, end, years", [
        (100.0, 121.0, 2.0),
        (1000.0, 800.0, 3.5),
        (50.0, 50.0, 0.25),
        (1.0, 1e6, 40.0),
    ])
    def test_matches_closed_form(self, begin, end, years):
        expected = (end / begin) ** (1 / years) - 1
        assert calculate_cagr(begin, end, years) == pytest.approx(expected, abs=1e-9)

    def test_doubling_over_one_year(self):
        assert calculate_cagr(100, 200, 1) == pytest.approx(1.0)

    @pytest.mark.parametrize("begin, end, years", [
        (0, 100, 1),
        (100, 0, 1),
        (100, 110, 0),
        (-100, 110, 1),
        (100, -110, 1),
        (100, 110, -2),
    ])
    def test_non_positive_inputs_raise(self, begin, end, years):
        with pytest.raises(InvalidInputError, match="must be positive"):
            calculate_cagr(begin, end, years)

    def test_invalid_input_is_a_value_error(self):
        with pytest.raises(ValueError):
            calculate_cagr(0, 100, 1)


class TestCalculateCAGRFromDates:

    def test_same_instant_returns_simple_return(self):
        assert calculate_cagr_from_dates(100, 110, NOW, NOW) == pytest.approx(0.10)

    def test_under_one_day_returns_simple_return(self):
        purchased = NOW - timedelta(hours=20)
        assert calculate_cagr_from_dates(100, 90, purchased, NOW) == pytest.approx(-0.10)

    def test_one_year_holding(self):
        assert calculate_cagr_from_dates(100, 110, NOW - YEAR, NOW) == pytest.approx(0.10, abs=1e-9)

    def test_two_year_holding(self):
        assert calculate_cagr_from_dates(100, 121, NOW - 2 * YEAR, NOW) == pytest.approx(0.10, abs=1e-9)

    def test_just_over_threshold_uses_power_formula(self):
        purchased = NOW - timedelta(days=2)
        years = 2 / 365.25
        expected = (110 / 100) ** (1 / years) - 1
        assert calculate_cagr_from_dates(100, 110, purchased, NOW) == pytest.approx(expected)

    def test_future_purchase_raises(self):
        with pytest.raises(InvalidInputError, match="future"):
            calculate_cagr_from_dates(100, 110, NOW + timedelta(days=1), NOW)

    def test_naive_purchase_date_treated_as_utc(self):
        naive = (NOW - YEAR).replace(tzinfo=None)
        assert calculate_cagr_from_dates(100, 110, naive, NOW) == pytest.approx(0.10, abs=1e-9)

    def test_plain_date_accepted(self):
        result = calculate_cagr_from_dates(100, 110, date(2020, 1, 1), datetime(2021, 1, 1, tzinfo=timezone.utc))
        assert result == pytest.approx(0.10, rel=1e-2)

    def test_defaults_to_current_time(self):
        purchased = datetime.now(timezone.utc) - 3 * YEAR
        assert calculate_cagr_from_dates(100, 133.1, purchased) == pytest.approx(0.10, abs=1e-6)


# ==================== Cash flows ====================

def test_build_cash_flows_appends_single_valuation():
    txns = [
        make_txn("AAPL", 10, 100.0, NOW - YEAR),
        make_txn("MSFT", 2.5, 40.0, NOW - 2 * YEAR),
    ]

    flows = build_cash_flows(txns, 1500.0, NOW)

    assert [cf.amount for cf in flows] == [-1000.0, -100.0, 1500.0]
    assert flows[-1].when == NOW
    assert flows[0].when == NOW - YEAR


def test_build_cash_flows_normalizes_naive_timestamps():
    txn = make_txn("AAPL", 1, 10.0, datetime(2024, 1, 1))

    flows = build_cash_flows([txn], 10.0, NOW)

    assert flows[0].when == datetime(2024, 1, 1, tzinfo=timezone.utc)


# ==================== XIRR ====================

class TestSolveXIRR:

    def test_round_trip_converges_to_ten_percent(self):
        flows = [CashFlow(-1000, NOW), CashFlow(1100, NOW + YEAR)]

        result = solve_xirr(flows)

        assert result.status is SolverStatus.CONVERGED
        assert result.value == pytest.approx(0.10, abs=1e-4)

    def test_converges_from_distant_guess(self):
        flows = [CashFlow(-1000, NOW), CashFlow(1500, NOW + 2 * YEAR)]

        result = solve_xirr(flows)

        assert result.converged
        assert result.value == pytest.approx(1.5 ** 0.5 - 1, abs=1e-6)
        assert result.iterations > 1

    def test_negative_return(self):
        flows = [CashFlow(-1000, NOW), CashFlow(800, NOW + YEAR)]
        assert solve_xirr(flows).value == pytest.approx(-0.20, abs=1e-6)

    def test_input_order_does_not_matter(self):
        flows = [
            CashFlow(1210 + 1100, NOW + 2 * YEAR),
            CashFlow(-1000, NOW),
            CashFlow(-1000, NOW + YEAR),
        ]
        assert solve_xirr(flows).value == pytest.approx(0.10, abs=1e-6)

    def test_fewer_than_two_flows_is_insufficient(self):
        assert solve_xirr([]).status is SolverStatus.INSUFFICIENT_DATA
        result = solve_xirr([CashFlow(-1000, NOW)])
        assert result.status is SolverStatus.INSUFFICIENT_DATA
        assert result.value is None

    def test_same_signed_flows_diverge(self):
        flows = [CashFlow(100, NOW), CashFlow(100, NOW + YEAR)]

        result = solve_xirr(flows)

        assert result.status is SolverStatus.DIVERGED
        assert result.value is None

    def test_flows_at_same_instant_diverge(self):
        flows = [CashFlow(-1000, NOW), CashFlow(1100, NOW)]
        assert solve_xirr(flows).status is SolverStatus.DIVERGED

    def test_iteration_cap_reports_no_convergence(self):
        flows = [CashFlow(-1000, NOW), CashFlow(1100, NOW + YEAR)]

        result = solve_xirr(flows, guess=0.5, max_iterations=1)

        assert result.status is SolverStatus.NO_CONVERGENCE
        assert result.iterations == 1
        assert result.value is None


class TestCalculateXIRR:

    def test_returns_plain_float(self):
        rate = calculate_xirr([CashFlow(-1000, NOW), CashFlow(1100, NOW + YEAR)])
        assert isinstance(rate, float)
        assert rate == pytest.approx(0.10, abs=1e-4)

    def test_single_flow_is_none(self):
        assert calculate_xirr([CashFlow(-1000, NOW)]) is None

    def test_all_positive_flows_is_none(self):
        assert calculate_xirr([CashFlow(500, NOW), CashFlow(700, NOW + YEAR)]) is None

    def test_non_convergence_is_logged(self, caplog):
        with caplog.at_level("WARNING"):
            assert calculate_xirr([CashFlow(100, NOW), CashFlow(100, NOW + YEAR)]) is None
        assert "diverged" in caplog.text


class TestStockXIRR:

    def test_multiple_purchases(self):
        txns = [
            make_txn("AAPL", 10, 100.0, NOW - 2 * YEAR),
            make_txn("AAPL", 10, 100.0, NOW - YEAR),
        ]
        # 20 shares worth 2310 today: -1000 * 1.1^2 - 1000 * 1.1 + 2310 = 0
        assert calculate_stock_xirr(txns, 115.5, NOW) == pytest.approx(0.10, abs=1e-6)

    def test_empty_transactions(self):
        assert calculate_stock_xirr([], 100.0, NOW) is None

    def test_portfolio_xirr_uses_given_terminal_value(self):
        txns = [make_txn("AAPL", 10, 100.0, NOW - YEAR)]
        assert calculate_portfolio_xirr(txns, 1100.0, NOW) == pytest.approx(0.10, abs=1e-6)
        assert calculate_portfolio_xirr([], 1100.0, NOW) is None


def test_return_metric_type():
    assert get_return_metric_type(1) == "CAGR"
    assert get_return_metric_type(2) == "XIRR"
    assert get_return_metric_type(7) == "XIRR"
