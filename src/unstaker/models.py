"""Unstaking data structures shared by the scanner, planner, builder and engine."""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_DOWN

from unstaker.asset import Asset, AssetError
from unstaker.constants import AMOUNT_SCALE, BatchState


def scale_amount(value: Decimal | float | int | str) -> int:
    """Scale a decimal config value to the chain's smallest unit, truncating toward zero."""
    scaled = Decimal(str(value)) * AMOUNT_SCALE
    return int(scaled.to_integral_value(rounding=ROUND_DOWN))


@dataclass(frozen=True, slots=True)
class StakeThresholds:
    """CPU/NET floors in the smallest unit. A delegatee is never unstaked below these."""

    cpu_floor: int
    net_floor: int

    def __post_init__(self):
        if self.cpu_floor < 0 or self.net_floor < 0:
            raise ValueError(f"stake floors must be non-negative: cpu={self.cpu_floor} net={self.net_floor}")

    @classmethod
    def from_decimal(cls, cpu: Decimal | float | str, net: Decimal | float | str) -> "StakeThresholds":
        return cls(cpu_floor=scale_amount(cpu), net_floor=scale_amount(net))

    def below_both(self, cpu_weight: Asset, net_weight: Asset) -> bool:
        return cpu_weight.amount < self.cpu_floor and net_weight.amount < self.net_floor


@dataclass(frozen=True, slots=True)
class DelegateeRecord:
    account: str
    cpu_weight: Asset
    net_weight: Asset

    @classmethod
    def from_row(cls, row: dict) -> "DelegateeRecord":
        """Build a record from a delband table row; missing or malformed assets raise AssetError."""
        try:
            return cls(
                account=row["to"],
                cpu_weight=Asset.from_string(row["cpu_weight"]),
                net_weight=Asset.from_string(row["net_weight"]),
            )
        except KeyError as e:
            raise AssetError(f"delband row missing {e}: {row!r}") from e

    def __str__(self):
        return f"{self.account} (cpu={self.cpu_weight}, net={self.net_weight})"


@dataclass(frozen=True, slots=True)
class Batch:
    index: int
    records: tuple[DelegateeRecord, ...]

    @property
    def reference(self) -> DelegateeRecord:
        # Only the first account is checked to confirm the whole batch landed
        return self.records[0]

    def __len__(self):
        return len(self.records)

    def __iter__(self):
        return iter(self.records)


@dataclass(frozen=True, slots=True)
class PlannedReduction:
    account: str
    new_cpu: Asset
    new_net: Asset

    @property
    def is_noop(self) -> bool:
        return self.new_cpu.amount == 0 and self.new_net.amount == 0


@dataclass(frozen=True, slots=True)
class ValidationSnapshot:
    """CPU/NET weights of a batch's reference account at one point in time."""

    cpu_weight: int
    net_weight: int

    @classmethod
    def from_account(cls, result: dict) -> "ValidationSnapshot":
        return cls(cpu_weight=int(result["cpu_weight"]), net_weight=int(result["net_weight"]))

    def unchanged(self, other: "ValidationSnapshot") -> bool:
        return self.cpu_weight == other.cpu_weight and self.net_weight == other.net_weight


@dataclass(slots=True)
class BatchResult:
    index: int
    reference: str
    state: BatchState = BatchState.BUILT
    attempts: int = 0
    transaction_ids: list[str] = field(default_factory=list)

    def __str__(self):
        return f"chunk #{self.index} -- {self.reference} -- {self.state} after {self.attempts} attempt(s)"


@dataclass(slots=True)
class RunSummary:
    records_found: int
    batches: int
    results: list[BatchResult] = field(default_factory=list)
    dry_run: bool = False

    @property
    def submitted(self) -> int:
        return sum(len(r.transaction_ids) for r in self.results)
