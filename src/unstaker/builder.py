import logging
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta, timezone

import unstaker.constants as C
from unstaker.chain import Chain, ChainResponseError, TRANSIENT_ERRORS
from unstaker.models import Batch, StakeThresholds
from unstaker.planner import plan_reductions
from unstaker.retry import RetryPolicy
from unstaker.serializer import (
    Action,
    PackedTransaction,
    PendingTransaction,
    PermissionLevel,
    TxOptions,
    UndelegateData,
)
from unstaker.signer import Signer

log = logging.getLogger("unstaker.builder")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def undelegate_action(authority: str, receiver: str, new_net, new_cpu, permission: str = C.DEFAULT_PERMISSION) -> Action:
    return Action(
        account=C.SYSTEM_ACCOUNT,
        name=C.UNDELEGATE_ACTION,
        authorization=(PermissionLevel(actor=authority, permission=permission),),
        data=UndelegateData(
            sender=authority,
            receiver=receiver,
            unstake_net_quantity=new_net,
            unstake_cpu_quantity=new_cpu,
        ),
    )


class TransactionBuilder:
    """Turns a batch into a fresh, signed undelegate transaction.

    Every call to ``build`` fetches new chain metadata and a new expiration, so a
    resubmission never reuses a stale reference block.
    """

    def __init__(
        self,
        chain: Chain,
        signer: Signer,
        keys: Sequence[str],
        thresholds: StakeThresholds,
        *,
        permission: str = C.DEFAULT_PERMISSION,
        expiration: timedelta = timedelta(seconds=C.TX_EXPIRATION_SECONDS),
        options_retry: RetryPolicy | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if not keys:
            raise ValueError("at least one signing key is required")
        self.chain = chain
        self.signer = signer
        self.keys = list(keys)
        self.thresholds = thresholds
        self.permission = permission
        self.expiration = expiration
        self.options_retry = options_retry or RetryPolicy(delay=C.TX_OPTIONS_RETRY_DELAY)
        self.clock = clock
        self._last_expiration: datetime | None = None

    def actions_for(self, authority: str, batch: Batch) -> list[Action]:
        return [
            undelegate_action(authority, r.account, r.new_net, r.new_cpu, self.permission)
            for r in plan_reductions(batch, self.thresholds)
        ]

    async def _fetch_options(self) -> TxOptions:
        info = await self.chain.get_info()
        try:
            return TxOptions.from_info(info)
        except (KeyError, ValueError) as e:
            raise ChainResponseError("/v1/chain/get_info", f"unusable head block: {e}") from e

    async def tx_options(self) -> TxOptions:
        return await self.options_retry.run(self._fetch_options, retry_on=TRANSIENT_ERRORS, label="filling tx opts")

    def _next_expiration(self) -> datetime:
        expiration = (self.clock() + self.expiration).replace(microsecond=0)
        # Packed expirations have whole-second resolution; keep each attempt strictly later
        if self._last_expiration is not None and expiration <= self._last_expiration:
            expiration = self._last_expiration + timedelta(seconds=1)
        self._last_expiration = expiration
        return expiration

    async def build(self, authority: str, batch: Batch) -> PendingTransaction | None:
        """Unsigned transaction for ``batch``, or None when no account in it needs unstaking."""
        actions = self.actions_for(authority, batch)
        if not actions:
            log.info("Chunk #%s has no accounts above the floors, nothing to build", batch.index)
            return None
        options = await self.tx_options()
        pending = PendingTransaction(actions=actions, expiration=self._next_expiration(), options=options)
        log.debug(
            "Built chunk #%s: %d actions, ref_block_num=%s expiration=%s",
            batch.index,
            len(actions),
            options.ref_block_num,
            pending.expiration.isoformat(),
        )
        return pending

    def sign(self, pending: PendingTransaction) -> PackedTransaction:
        digest = pending.signing_digest()
        for key in self.keys:
            pending.signatures.append(self.signer.sign(digest, key))
        return pending.packed()

    async def build_and_sign(self, authority: str, batch: Batch) -> PackedTransaction | None:
        pending = await self.build(authority, batch)
        if pending is None:
            return None
        return self.sign(pending)
