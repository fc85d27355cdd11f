"""
Token amounts in whole units and smallest units.
"""

from decimal import Decimal, InvalidOperation, localcontext
from typing import Union

from ..constants import LYT_DECIMALS

# Enough digits for any uint256 amount
PRECISION = 80


class Amount:
    """
    An amount of tokens, held as an integer count of smallest units.

    Usage:
        Amount.make(1000).value          # 1000 * 10**18
        Amount.make("0.5").value         # 5 * 10**17
        str(Amount(10**17))              # "0.1"
    """

    def __init__(self, value: int, decimals: int = LYT_DECIMALS):
        if decimals < 0:
            raise ValueError(f"Decimals cannot be negative, got {decimals}")
        self.value = int(value)
        self.decimals = decimals

    @classmethod
    def make(cls, amount: Union[int, str, Decimal], decimals: int = LYT_DECIMALS) -> "Amount":
        """
        Convert a whole-token amount into smallest units.

        Raises:
            ValueError: If the amount is not a number or has more fractional
                digits than ``decimals``
        """
        try:
            whole = Decimal(str(amount))
        except InvalidOperation:
            raise ValueError(f"Not a token amount: {amount!r}")
        if not whole.is_finite():
            raise ValueError(f"Not a token amount: {amount!r}")

        with localcontext() as ctx:
            ctx.prec = PRECISION
            scaled = whole.scaleb(decimals)
        if scaled != scaled.to_integral_value():
            raise ValueError(f"{amount} has more than {decimals} decimal places")
        return cls(int(scaled), decimals)

    def to_decimal(self) -> Decimal:
        with localcontext() as ctx:
            ctx.prec = PRECISION
            return Decimal(self.value).scaleb(-self.decimals)

    def __int__(self) -> int:
        return self.value

    def __eq__(self, other) -> bool:
        if isinstance(other, Amount):
            return self.value == other.value and self.decimals == other.decimals
        if isinstance(other, int):
            return self.value == other
        return NotImplemented

    def __hash__(self) -> int:
        return hash((self.value, self.decimals))

    def __str__(self) -> str:
        text = format(self.to_decimal(), 'f')
        if '.' in text:
            text = text.rstrip('0').rstrip('.')
        return text

    def __repr__(self) -> str:
        return f"Amount({self.value}, decimals={self.decimals})"
