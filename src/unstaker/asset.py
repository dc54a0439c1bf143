"""Fixed-point chain assets such as ``"12.50000000 WAX"``.

An asset is an integer count of the smallest unit plus a symbol (precision and
code). Reductions keep the original symbol via ``with_amount``.
"""

import re
import struct
from dataclasses import dataclass

MAX_PRECISION = 18
_ASSET_RE = re.compile(r"^\s*(-?)(\d+)(?:\.(\d+))?\s+([A-Z]{1,7})\s*$")


class AssetError(ValueError):
    """Raised for malformed asset strings or mismatched symbols."""


@dataclass(frozen=True, slots=True)
class Asset:
    amount: int
    precision: int
    symbol: str

    @classmethod
    def from_string(cls, text: str) -> "Asset":
        """Parse the chain's string form of an asset.

        Args:
            text: e.g. "1.00000000 WAX" or "0 EOS"

        Returns:
            Asset with the amount scaled to the smallest unit
        """
        if not isinstance(text, str):
            raise AssetError(f"asset must be a string, got {type(text).__name__}")
        m = _ASSET_RE.match(text)
        if m is None:
            raise AssetError(f"malformed asset: {text!r}")
        sign, whole, frac, symbol = m.groups()
        frac = frac or ""
        if len(frac) > MAX_PRECISION:
            raise AssetError(f"asset precision {len(frac)} exceeds {MAX_PRECISION}: {text!r}")
        amount = int(whole + frac)
        if sign:
            amount = -amount
        return cls(amount=amount, precision=len(frac), symbol=symbol)

    def with_amount(self, amount: int) -> "Asset":
        return Asset(amount=amount, precision=self.precision, symbol=self.symbol)

    def __str__(self) -> str:
        digits = str(abs(self.amount)).rjust(self.precision + 1, "0")
        sign = "-" if self.amount < 0 else ""
        if self.precision:
            return f"{sign}{digits[:-self.precision]}.{digits[-self.precision:]} {self.symbol}"
        return f"{sign}{digits} {self.symbol}"

    def symbol_code(self) -> int:
        """Symbol as the chain's uint64: precision in the low byte, code above it."""
        raw = bytes([self.precision]) + self.symbol.encode("ascii").ljust(7, b"\x00")
        return int.from_bytes(raw, "little")

    def to_bytes(self) -> bytes:
        return struct.pack("<qQ", self.amount, self.symbol_code())
