# app/utils/distribution.py
"""
Income distribution calculator.

Splits an income amount into needs/wants/savings shares so that the three
shares always add back up to the income amount to the cent.
"""
from decimal import Decimal, ROUND_HALF_EVEN, InvalidOperation
from typing import Mapping, NamedTuple, Union

from app.core.exceptions import InvalidAllocation, ValidationError

# Currency minor-unit precision
CENT = Decimal("0.01")
HUNDRED = Decimal("100")

Number = Union[Decimal, int, float, str]


class BudgetPercentages(NamedTuple):
    needs: Decimal
    wants: Decimal
    savings: Decimal

    @property
    def total(self) -> Decimal:
        return self.needs + self.wants + self.savings


class Allocation(NamedTuple):
    needs: Decimal
    wants: Decimal
    savings: Decimal

    @property
    def total(self) -> Decimal:
        return self.needs + self.wants + self.savings


def to_decimal(value: Number, field: str = "amount") -> Decimal:
    """Convert user/DB numerics to Decimal without float artefacts."""
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise ValidationError(f"{field} must be a number", field=field)
    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number", field=field)
    return result


def to_money(value: Number) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_EVEN)


def coerce_percentages(percentages: Union[BudgetPercentages, Mapping[str, Number]]) -> BudgetPercentages:
    if isinstance(percentages, BudgetPercentages):
        return BudgetPercentages(*(to_decimal(p, "percentages") for p in percentages))
    try:
        return BudgetPercentages(
            needs=to_decimal(percentages["needs"], "needs"),
            wants=to_decimal(percentages["wants"], "wants"),
            savings=to_decimal(percentages["savings"], "savings"),
        )
    except KeyError as e:
        raise InvalidAllocation(f"Missing {e.args[0]} percentage", field="percentages")


def check_percentages(percentages: BudgetPercentages) -> None:
    for name, value in zip(BudgetPercentages._fields, percentages):
        if value < 0:
            raise InvalidAllocation(f"{name} percentage cannot be negative", field=name)
    if percentages.total != HUNDRED:
        raise InvalidAllocation(
            f"Budget percentages must sum to 100 (got {percentages.total.normalize()})",
            field="percentages",
        )


def allocate(
    income_amount: Number,
    percentages: Union[BudgetPercentages, Mapping[str, Number]],
) -> Allocation:
    """
    Split ``income_amount`` into needs/wants/savings.

    Each share is ``amount * pct / 100`` rounded half-to-even to the cent.
    Whatever the rounding leaves over (or overshoots) is added to the
    largest share, ties going to needs, then wants, then savings, so the
    result sums exactly to the income amount.

    Raises:
        ValidationError: amount is not a positive number
        InvalidAllocation: percentages are negative or do not sum to 100
    """
    amount = to_money(income_amount)
    if amount <= 0:
        raise ValidationError("Amount must be greater than zero", field="amount")

    pct = coerce_percentages(percentages)
    check_percentages(pct)

    shares = [
        (amount * p / HUNDRED).quantize(CENT, rounding=ROUND_HALF_EVEN)
        for p in pct
    ]
    residual = amount - sum(shares)
    if residual:
        # max() keeps the first of equal candidates, which is the tie-break order
        largest = max(range(len(shares)), key=lambda i: shares[i])
        shares[largest] += residual

    return Allocation(*shares)
