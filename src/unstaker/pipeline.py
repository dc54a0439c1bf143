import logging
from collections.abc import Collection

from unstaker.builder import TransactionBuilder
from unstaker.chain import Chain
from unstaker.config import UnstakerConfig
from unstaker.engine import ReconciliationEngine
from unstaker.models import Batch, RunSummary
from unstaker.planner import plan
from unstaker.scanner import TableScanner
from unstaker.signer import Signer

log = logging.getLogger("unstaker")


class Unstaker:
    """One run: scan the authority's delegations, plan batches, submit them in order."""

    def __init__(
        self,
        config: UnstakerConfig,
        chain: Chain,
        signer: Signer,
        *,
        scanner: TableScanner | None = None,
        builder: TransactionBuilder | None = None,
        engine: ReconciliationEngine | None = None,
    ):
        self.config = config
        self.chain = chain
        self.thresholds = config.thresholds
        self.scanner = scanner or TableScanner(chain)
        self.builder = builder or TransactionBuilder(
            chain,
            signer,
            config.signing_keys,
            self.thresholds,
            permission=config.permission,
        )
        self.engine = engine or ReconciliationEngine(chain, self.builder)

    def describe(self, batch: Batch) -> None:
        actions = self.builder.actions_for(self.config.account, batch)
        log.info("Chunk #%s: %d accounts, %d actions", batch.index, len(batch), len(actions))
        for a in actions:
            log.info("  %s", a.data.to_json())

    async def run(self, allow_set: Collection[str], *, dry_run: bool = False) -> RunSummary:
        log.info("Checking stakes from this account and comparing with provided accounts")
        records = await self.scanner.scan(self.config.account, allow_set, self.thresholds)
        log.info("Found %d accounts to unstake", len(records))

        batches = plan(records, self.config.chunk_size)
        log.info("Chunks: %d", len(batches))
        summary = RunSummary(records_found=len(records), batches=len(batches), dry_run=dry_run)
        if not batches:
            log.info("No chunks to process.")
            return summary

        if dry_run:
            for batch in batches:
                self.describe(batch)
            return summary

        summary.results = await self.engine.run(self.config.account, batches)
        log.info("Processed %d chunks, %d transactions submitted", len(summary.results), summary.submitted)
        return summary
