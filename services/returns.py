"""
Return metrics for holdings and portfolios.

CAGR is the closed-form annualized growth of a single buy-and-hold position:

    CAGR = (ending_value / beginning_value) ** (1 / years) - 1

XIRR is the annualized money-weighted return of irregularly dated cash flows,
the rate r that zeroes

    NPV(r) = sum(amount_i / (1 + r) ** years_i)

where years_i is measured from the earliest flow. It is solved with
Newton-Raphson starting from 10%. Numeric dead ends (too few flows, no
convergence, a runaway iterate) come back as None rather than as exceptions,
so one odd position never takes down the rest of a portfolio.

Years are always calendar days / 365.25.
"""

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Union

import numpy as np

from services.common import to_utc_datetime, utc_now, years_between

logger = logging.getLogger(__name__)

XIRR_INITIAL_GUESS = 0.10
XIRR_TOLERANCE = 1e-6
XIRR_MAX_ITERATIONS = 100

# Holding periods shorter than this report the simple return instead of CAGR
MIN_CAGR_YEARS = 1 / 365


class InvalidInputError(ValueError):
    """Raised when a return calculation receives inputs it cannot work with."""


@dataclass(frozen=True)
class CashFlow:
    """A signed amount at a point in time (negative = money out)."""
    amount: float
    when: datetime


class SolverStatus(str, Enum):
    CONVERGED = "converged"
    INSUFFICIENT_DATA = "insufficient_data"
    NO_CONVERGENCE = "no_convergence"
    DIVERGED = "diverged"


@dataclass(frozen=True)
class XIRRResult:
    """Outcome of one Newton-Raphson run."""
    status: SolverStatus
    rate: Optional[float] = None
    iterations: int = 0

    @property
    def converged(self) -> bool:
        return self.status is SolverStatus.CONVERGED

    @property
    def value(self) -> Optional[float]:
        """The rate if the solver converged, otherwise None."""
        return self.rate if self.converged else None


# ==================== Cash flows ====================

def build_cash_flows(transactions: Iterable, current_value: float,
                     now: Union[datetime, date]) -> List[CashFlow]:
    """
    Turn purchases plus a valuation into a cash-flow series.

    Each transaction becomes an outflow of quantity * price at its purchase
    time; current_value is appended as a single inflow at `now`, as if the
    position were sold today.
    """
    flows = [
        CashFlow(
            amount=-(txn.quantity * txn.price),
            when=to_utc_datetime(txn.purchased_at),
        )
        for txn in transactions
    ]
    flows.append(CashFlow(amount=current_value, when=to_utc_datetime(now)))
    return flows


# ==================== CAGR ====================

def calculate_cagr(beginning_value: float, ending_value: float, years: float) -> float:
    """
    Calculate Compound Annual Growth Rate.

    Args:
        beginning_value: Initial investment value
        ending_value: Current/final value
        years: Number of years invested

    Returns:
        CAGR as a decimal (e.g., 0.15 for 15%)

    Raises:
        InvalidInputError: if any argument is not strictly positive
    """
    if not (beginning_value > 0 and ending_value > 0 and years > 0):
        raise InvalidInputError("All values must be positive for CAGR calculation")

    return (ending_value / beginning_value) ** (1 / years) - 1


def calculate_cagr_from_dates(
    purchase_price: float,
    current_price: float,
    purchase_date: Union[datetime, date],
    now: Optional[Union[datetime, date]] = None
) -> float:
    """
    Calculate CAGR from a purchase date up to `now` (default: current UTC time).

    Positions held for less than a day report the simple return
    (current - purchase) / purchase, since raising to 1/years blows up as
    years approaches zero.

    Raises:
        InvalidInputError: if the purchase date is after `now`, or prices are
            not positive
    """
    if now is None:
        now = utc_now()

    years = years_between(purchase_date, now)
    if years < 0:
        raise InvalidInputError("Purchase date cannot be in the future")

    if years < MIN_CAGR_YEARS:
        if not purchase_price > 0:
            raise InvalidInputError("All values must be positive for CAGR calculation")
        return (current_price - purchase_price) / purchase_price

    return calculate_cagr(purchase_price, current_price, years)


# ==================== XIRR ====================

def solve_xirr(
    cash_flows: Sequence[CashFlow],
    guess: float = XIRR_INITIAL_GUESS,
    tolerance: float = XIRR_TOLERANCE,
    max_iterations: int = XIRR_MAX_ITERATIONS
) -> XIRRResult:
    """
    Find the annualized rate that zeroes the NPV of `cash_flows`.

    Newton-Raphson on NPV(r) with derivative
    NPV'(r) = sum(-amount_i * years_i / ((1 + r) ** years_i * (1 + r))).
    Iteration stops once successive guesses differ by less than `tolerance`.
    A non-finite iterate (flat derivative, flows all of one sign) stops the
    run immediately as DIVERGED.
    """
    if len(cash_flows) < 2:
        return XIRRResult(SolverStatus.INSUFFICIENT_DATA)

    ordered = sorted(cash_flows, key=lambda cf: to_utc_datetime(cf.when))
    first = ordered[0].when
    amounts = np.array([cf.amount for cf in ordered], dtype=float)
    years = np.array([years_between(first, cf.when) for cf in ordered], dtype=float)

    rate = float(guess)
    with np.errstate(all='ignore'):
        for iteration in range(1, max_iterations + 1):
            factor = np.power(1.0 + rate, years)
            npv = np.sum(amounts / factor)
            dnpv = np.sum(-amounts * years / (factor * (1.0 + rate)))

            new_rate = float(rate - npv / dnpv)

            if abs(new_rate - rate) < tolerance:
                if not math.isfinite(new_rate):
                    return XIRRResult(SolverStatus.DIVERGED, iterations=iteration)
                return XIRRResult(SolverStatus.CONVERGED, new_rate, iteration)

            rate = new_rate
            if not math.isfinite(rate):
                return XIRRResult(SolverStatus.DIVERGED, iterations=iteration)

    return XIRRResult(SolverStatus.NO_CONVERGENCE, iterations=max_iterations)


def calculate_xirr(cash_flows: Sequence[CashFlow]) -> Optional[float]:
    """
    Calculate XIRR for a cash-flow series.

    Returns:
        XIRR as a decimal (e.g., 0.15 for 15%), or None when there are fewer
        than two flows or the solver finds no solution
    """
    result = solve_xirr(cash_flows)
    if result.status in (SolverStatus.NO_CONVERGENCE, SolverStatus.DIVERGED):
        logger.warning(
            f"XIRR calculation returned no result ({result.status.value} "
            f"after {result.iterations} iterations)"
        )
    return result.value


def calculate_portfolio_xirr(
    transactions: Sequence,
    current_value: float,
    now: Optional[Union[datetime, date]] = None
) -> Optional[float]:
    """XIRR of a set of purchases valued at `current_value` today."""
    if not transactions:
        return None
    if now is None:
        now = utc_now()
    return calculate_xirr(build_cash_flows(transactions, current_value, now))


def calculate_stock_xirr(
    transactions: Sequence,
    current_price: float,
    now: Optional[Union[datetime, date]] = None
) -> Optional[float]:
    """
    Calculate XIRR for a single stock across multiple purchases.

    The position is valued at total quantity * current_price.
    """
    if not transactions:
        return None

    total_quantity = sum(txn.quantity for txn in transactions)
    return calculate_portfolio_xirr(transactions, total_quantity * current_price, now)


def get_return_metric_type(transaction_count: int) -> str:
    """'CAGR' for a single purchase, 'XIRR' for several."""
    return "CAGR" if transaction_count == 1 else "XIRR"
