"""Paginated scan of the authority's delband table.

Walks every page of delegations made by ``scope_account`` and keeps the rows
worth unstaking: the delegatee is on the allow list and at least one of its
weights reaches the corresponding floor.
"""
import logging
from collections.abc import Collection

import unstaker.constants as C
from unstaker.chain import Chain, TRANSIENT_ERRORS, delband_query
from unstaker.models import DelegateeRecord, StakeThresholds
from unstaker.retry import RetryPolicy

log = logging.getLogger("unstaker.scanner")


class TableScanner:
    def __init__(self, chain: Chain, *, retry: RetryPolicy | None = None, page_limit: int = C.TABLE_PAGE_LIMIT):
        self.chain = chain
        self.retry = retry or RetryPolicy(delay=C.SCAN_RETRY_DELAY)
        self.page_limit = page_limit

    async def _fetch_page(self, lower_bound: str, scope: str) -> dict:
        body = delband_query(scope, lower_bound=lower_bound, limit=self.page_limit)
        return await self.retry.run(
            lambda: self.chain.get_table_rows(body),
            retry_on=TRANSIENT_ERRORS,
            label="fetching rows",
        )

    async def scan(
        self,
        scope_account: str,
        allow_set: Collection[str],
        thresholds: StakeThresholds,
    ) -> list[DelegateeRecord]:
        """Return the delegatees to unstake, in ledger row order.

        Malformed asset strings raise AssetError and abort the scan.
        """
        records: list[DelegateeRecord] = []
        cursor = C.TABLE_FIRST_KEY
        pages = 0
        while True:
            page = await self._fetch_page(cursor, scope_account)
            pages += 1
            rows = page["rows"]
            if not rows:
                break
            for row in rows:
                if row.get("to") not in allow_set:
                    continue
                record = DelegateeRecord.from_row(row)
                if thresholds.below_both(record.cpu_weight, record.net_weight):
                    log.debug("Skipping %s: not enough stake to unstake", record)
                    continue
                records.append(record)
            next_key = page.get("next_key")
            if page.get("more") and next_key:
                log.debug("Page %d had %d rows, continuing from %s", pages, len(rows), next_key)
                cursor = str(next_key)
            else:
                break
        log.info("Scanned %d page(s) of %s delegations, %d match", pages, scope_account, len(records))
        return records


async def scan(
    chain: Chain,
    scope_account: str,
    allow_set: Collection[str],
    thresholds: StakeThresholds,
    *,
    retry: RetryPolicy | None = None,
) -> list[DelegateeRecord]:
    return await TableScanner(chain, retry=retry).scan(scope_account, allow_set, thresholds)
