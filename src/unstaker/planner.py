import logging
from collections.abc import Sequence

from unstaker.models import Batch, DelegateeRecord, PlannedReduction, StakeThresholds

log = logging.getLogger("unstaker.planner")


def reduce_amount(current: int, floor: int) -> int:
    # NOTE: the floor is deducted as a flat amount, it is not the level the account lands on
    if current > floor:
        return current - floor
    return 0


def plan(records: Sequence[DelegateeRecord], chunk_size: int) -> list[Batch]:
    """Split records into consecutive batches of at most ``chunk_size``, keeping scan order."""
    if chunk_size <= 0 or not records:
        return []
    return [
        Batch(index=n, records=tuple(records[i : i + chunk_size]))
        for n, i in enumerate(range(0, len(records), chunk_size))
    ]


def plan_reduction(record: DelegateeRecord, thresholds: StakeThresholds) -> PlannedReduction:
    return PlannedReduction(
        account=record.account,
        new_cpu=record.cpu_weight.with_amount(reduce_amount(record.cpu_weight.amount, thresholds.cpu_floor)),
        new_net=record.net_weight.with_amount(reduce_amount(record.net_weight.amount, thresholds.net_floor)),
    )


def plan_reductions(batch: Batch, thresholds: StakeThresholds) -> list[PlannedReduction]:
    """Reductions for every account in the batch that would actually change."""
    out = []
    for record in batch:
        r = plan_reduction(record, thresholds)
        if r.is_noop:
            log.debug("No reduction for %s", record)
            continue
        out.append(r)
    return out
