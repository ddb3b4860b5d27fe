"""
Order pricing engine.

Computes the subtotal, voucher discount and total for a set of priced lines.
The engine is a pure calculation: it performs no I/O, never mutates its
inputs and returns the same quote for the same arguments, so it is safe to
call from anywhere including tests without fixtures.

All money is handled as :class:`~decimal.Decimal` and rounded half up to two
decimal places.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Iterable, Optional

from marketplace.core.exceptions import ValidationError

CENT = Decimal("0.01")
HUNDRED = Decimal("100")
ZERO = Decimal("0.00")


class PricingError(ValidationError):
    """Base exception for pricing errors."""

    default_code = "PRICING_ERROR"


class PricingValidationError(PricingError):
    """Raised when a price, quantity or voucher term is malformed."""

    default_code = "PRICING_VALIDATION_ERROR"


class DiscountType(str, Enum):
    """Enumeration of voucher discount types."""

    FIXED = "fixed"
    PERCENTAGE = "percentage"

    @classmethod
    def from_string(cls, value: str) -> "DiscountType":
        try:
            return cls(value.lower())
        except ValueError as e:
            raise ValueError(
                f"Invalid discount type: {value}. "
                f"Must be one of: {', '.join(t.value for t in cls)}"
            ) from e


@dataclass(frozen=True)
class PricedLine:
    """A quantity of one product at a snapshotted unit price."""

    unit_price: Decimal
    quantity: int


@dataclass(frozen=True)
class VoucherTerms:
    """
    Discount rule of a voucher.

    ``max_discount`` of ``None`` or zero means the percentage discount is
    uncapped.
    """

    discount_type: DiscountType
    value: Decimal
    min_order_value: Decimal = ZERO
    max_discount: Optional[Decimal] = None
    code: Optional[str] = None


@dataclass(frozen=True)
class PriceQuote:
    subtotal: Decimal
    discount: Decimal
    total: Decimal
    voucher_applied: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "subtotal": str(self.subtotal),
            "discount": str(self.discount),
            "total": str(self.total),
            "voucher_applied": self.voucher_applied,
        }


def quantize(amount: Decimal) -> Decimal:
    """Round a money amount half up to cents."""
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


class PricingEngine:
    """
    Calculates order totals from line snapshots and at most one voucher.

    Rules:
        * ``subtotal = sum(unit_price * quantity)``
        * a voucher whose ``min_order_value`` exceeds the subtotal yields no
          discount (the voucher is simply not applied)
        * fixed vouchers discount their value; percentage vouchers discount
          ``subtotal * value / 100``, capped by a positive ``max_discount``
        * ``total = max(subtotal - discount, 0)``
    """

    def calculate(
        self,
        lines: Iterable[PricedLine],
        voucher: Optional[VoucherTerms] = None,
    ) -> PriceQuote:
        """
        Price a set of lines.

        Args:
            lines: Priced lines; must contain at least one entry
            voucher: Optional voucher terms

        Returns:
            PriceQuote with subtotal, discount and total

        Raises:
            PricingValidationError: If any line or voucher term is invalid
        """
        lines = tuple(lines)
        if not lines:
            raise PricingValidationError("At least one line is required")

        subtotal = quantize(sum((self._line_total(line) for line in lines), ZERO))

        if voucher is None:
            return PriceQuote(subtotal=subtotal, discount=ZERO, total=subtotal)

        discount = self.calculate_discount(subtotal, voucher)
        total = quantize(max(subtotal - discount, ZERO))

        return PriceQuote(
            subtotal=subtotal,
            discount=discount,
            total=total,
            voucher_applied=discount > ZERO,
        )

    def calculate_discount(self, subtotal: Decimal, voucher: VoucherTerms) -> Decimal:
        """
        Discount a voucher grants on a subtotal.

        Returns zero when the subtotal is below the voucher minimum.
        """
        self._validate_voucher(voucher)

        if subtotal < voucher.min_order_value:
            return ZERO

        if voucher.discount_type == DiscountType.FIXED:
            discount = voucher.value
        else:
            discount = subtotal * voucher.value / HUNDRED
            if voucher.max_discount is not None and voucher.max_discount > ZERO:
                discount = min(discount, voucher.max_discount)

        return quantize(discount)

    def _line_total(self, line: PricedLine) -> Decimal:
        if line.quantity < 1:
            raise PricingValidationError(
                "Quantity must be at least 1",
                quantity=line.quantity,
            )
        if line.unit_price < ZERO:
            raise PricingValidationError(
                "Unit price cannot be negative",
                unit_price=str(line.unit_price),
            )
        return line.unit_price * line.quantity

    def _validate_voucher(self, voucher: VoucherTerms) -> None:
        if voucher.value < ZERO:
            raise PricingValidationError(
                "Voucher value cannot be negative",
                voucher_code=voucher.code,
            )
        if voucher.discount_type == DiscountType.PERCENTAGE and voucher.value > HUNDRED:
            raise PricingValidationError(
                "Percentage voucher cannot exceed 100",
                voucher_code=voucher.code,
                value=str(voucher.value),
            )
