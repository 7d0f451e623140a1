"""
Fixed-point amount conversion.

Converts between human decimal amounts and the token's integer on-chain
unit. All arithmetic is done on the Decimal digit tuple with Python ints,
so results never depend on the active decimal context precision.
"""

from decimal import Decimal, InvalidOperation

from custody.config.constants import USDT_DECIMALS
from custody.utils.exceptions import AmountPrecisionError, InvalidAmountError

# Largest amount a token transfer can carry (uint256)
MAX_UNITS = 2**256 - 1


class AmountCodec:
    """
    Token amount codec.

    Round-trips exactly for any non-negative amount with at most
    `decimals` fractional digits. Extra precision is rejected, never
    truncated.
    """

    def __init__(self, decimals: int = USDT_DECIMALS) -> None:
        """
        Initialize codec.

        Args:
            decimals: Token's declared decimal precision
        """
        if decimals < 0:
            raise ValueError("decimals must be non-negative")
        self.decimals = decimals

    @staticmethod
    def _as_decimal(amount: Decimal | int | str) -> Decimal:
        # bool is an int subclass and float is binary; neither is an amount
        if isinstance(amount, (bool, float)):
            raise TypeError(
                f"Amount must be Decimal, int or str, got {type(amount).__name__}"
            )
        if isinstance(amount, Decimal):
            value = amount
        elif isinstance(amount, (int, str)):
            try:
                value = Decimal(amount.strip() if isinstance(amount, str) else amount)
            except InvalidOperation as e:
                raise InvalidAmountError(f"Not a decimal amount: {amount!r}") from e
        else:
            raise TypeError(
                f"Amount must be Decimal, int or str, got {type(amount).__name__}"
            )

        if not value.is_finite():
            raise InvalidAmountError(f"Amount must be finite: {amount!r}")
        return value

    def to_units(self, amount: Decimal | int | str) -> int:
        """
        Convert a decimal amount to integer token units.

        Args:
            amount: Human-readable amount (e.g. Decimal("50.5"))

        Returns:
            Integer units (e.g. 50500000 at 6 decimals)

        Raises:
            AmountPrecisionError: If amount has more fractional digits
                than the token supports
            InvalidAmountError: If amount is negative, not a number, or
                beyond the uint256 range
            TypeError: If amount is a float
        """
        value = self._as_decimal(amount)
        if value < 0:
            raise InvalidAmountError(f"Amount must not be negative: {value}")
        if value.is_zero():
            return 0
        # Bounded before the integer math so huge exponents cost nothing
        if value.adjusted() + self.decimals > len(str(MAX_UNITS)):
            raise InvalidAmountError(f"Amount out of range: {value}")

        _sign, digits, exponent = value.as_tuple()
        coefficient = int("".join(map(str, digits))) if digits else 0
        shift = exponent + self.decimals

        if shift >= 0:
            units = coefficient * 10**shift
        else:
            # More fractional places than digits can never divide evenly
            if -shift > len(digits) or coefficient % 10 ** (-shift):
                raise AmountPrecisionError(
                    f"Amount {value} exceeds token precision of {self.decimals} decimals"
                )
            units = coefficient // 10 ** (-shift)

        if units > MAX_UNITS:
            raise InvalidAmountError(f"Amount out of range: {value}")
        return units

    def from_units(self, units: int) -> Decimal:
        """
        Convert integer token units to a decimal amount.

        Args:
            units: Raw on-chain amount

        Returns:
            Decimal with exactly `decimals` fractional digits

        Raises:
            InvalidAmountError: If units is negative
            TypeError: If units is not an int
        """
        if isinstance(units, bool) or not isinstance(units, int):
            raise TypeError(f"Units must be int, got {type(units).__name__}")
        if units < 0:
            raise InvalidAmountError(f"Units must not be negative: {units}")
        return Decimal(f"{units}e-{self.decimals}")

    def matches(self, units: int, amount: Decimal | int | str) -> bool:
        """
        Exact equality of raw units and a decimal amount.

        Args:
            units: Raw on-chain amount
            amount: Claimed decimal amount

        Returns:
            True only if both denote the same value
        """
        return self.from_units(units) == self._as_decimal(amount)
