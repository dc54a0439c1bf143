# unstaker/engine.py
"""
Submission and reconciliation of unstake batches.

Each batch walks BUILT -> SUBMITTED -> VALIDATING -> VALIDATED | RESUBMIT:
1. Snapshot the batch's first account before anything is sent
2. Build, sign and push one transaction for the whole batch
3. Wait for the chain to settle, then compare the account against the snapshot
4. Unchanged twice in a row: rebuild from scratch and push again

Batches run strictly one after another. They share one authority account and
one key, so overlapping transactions would race on its resource state.
"""
import asyncio
import logging
from collections.abc import Sequence

import unstaker.constants as C
from unstaker.builder import TransactionBuilder
from unstaker.chain import AccountLookupError, Chain
from unstaker.models import Batch, BatchResult, ValidationSnapshot
from unstaker.retry import RetryLimitExceeded, RetryPolicy, Sleep

log = logging.getLogger("unstaker.engine")


class ReconciliationEngine:
    def __init__(
        self,
        chain: Chain,
        builder: TransactionBuilder,
        *,
        settle_delay: float = C.SETTLE_DELAY,
        grace_delay: float = C.GRACE_DELAY,
        sleep: Sleep = asyncio.sleep,
        resubmit: RetryPolicy | None = None,
    ):
        self.chain = chain
        self.builder = builder
        self.settle_delay = settle_delay
        self.grace_delay = grace_delay
        self.sleep = sleep
        # Only the limit matters here; resubmission pacing comes from the validation waits
        self.resubmit = resubmit or RetryPolicy(delay=0, sleep=sleep)

    async def snapshot(self, account: str) -> ValidationSnapshot:
        result = await self.chain.get_account(account)
        try:
            return ValidationSnapshot.from_account(result)
        except (KeyError, TypeError, ValueError) as e:
            raise AccountLookupError(f"getting account {account}: unreadable weights ({e})") from e

    async def _validate(self, account: str, baseline: ValidationSnapshot) -> bool:
        """True once the reference account moved; allows one grace re-check."""
        for first in (True, False):
            log.info("Validating...")
            now = await self.snapshot(account)
            if not now.unchanged(baseline):
                return True
            log.warning("Transaction failed (CPU/NET weight not changed)")
            if first:
                log.info("Retrying validation in %s seconds...", self.grace_delay)
                await self.sleep(self.grace_delay)
        return False

    async def process(self, authority: str, batch: Batch) -> BatchResult:
        reference = batch.reference.account
        result = BatchResult(index=batch.index, reference=reference)
        log.info("Processing chunk #%s (%d accounts)", batch.index, len(batch))

        baseline = await self.snapshot(reference)

        while True:
            pending = await self.builder.build(authority, batch)
            if pending is None:
                result.state = C.BatchState.VALIDATED
                return result
            packed = self.builder.sign(pending)
            result.state = C.BatchState.BUILT
            result.attempts += 1

            resp = await self.chain.push_transaction(packed.to_push_payload())
            tx_id = resp["transaction_id"]
            result.transaction_ids.append(tx_id)
            result.state = C.BatchState.SUBMITTED
            log.info("Transaction ID: %s, waiting %s seconds and validating...", tx_id, self.settle_delay)
            await self.sleep(self.settle_delay)

            result.state = C.BatchState.VALIDATING
            if await self._validate(reference, baseline):
                result.state = C.BatchState.VALIDATED
                log.info("Transaction validated.")
                return result

            result.state = C.BatchState.RESUBMIT
            if self.resubmit.exhausted(result.attempts):
                raise RetryLimitExceeded(f"resubmitting chunk #{batch.index}", result.attempts)
            log.warning("Could not validate transaction. Re-sending it.")

    async def run(self, authority: str, batches: Sequence[Batch]) -> list[BatchResult]:
        results = []
        for batch in batches:
            results.append(await self.process(authority, batch))
        return results
