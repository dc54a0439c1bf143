"""Test the submit/validate/resubmit state machine."""

from datetime import datetime, timezone
from unittest import IsolatedAsyncioTestCase

from unstaker.builder import TransactionBuilder
from unstaker.chain import AccountLookupError, PushError
from unstaker.constants import BatchState
from unstaker.engine import ReconciliationEngine
from unstaker.models import Batch, StakeThresholds
from unstaker.planner import plan
from unstaker.retry import RetryLimitExceeded, RetryPolicy
from tests.fakes import FakeChain, FakeSigner, RecordingSleep, expiration_of, record

BEFORE = (1000, 1000)
AFTER = (900, 900)


class FixedClock:
    def __init__(self):
        self.now = datetime(2026, 3, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now


class EngineTests(IsolatedAsyncioTestCase):
    def make_engine(self, chain, *, limit=None):
        self.sleep = RecordingSleep()
        builder = TransactionBuilder(
            chain,
            FakeSigner(),
            ["key1"],
            StakeThresholds(cpu_floor=100, net_floor=100),
            options_retry=RetryPolicy(delay=0.005, limit=5, sleep=self.sleep),
            clock=FixedClock(),
        )
        return ReconciliationEngine(
            chain,
            builder,
            sleep=self.sleep,
            resubmit=RetryPolicy(delay=0, limit=limit, sleep=self.sleep),
        )

    def batch(self, *names, index=0):
        return Batch(index=index, records=tuple(record(n, 1000, 1000) for n in names))

    async def test_validated_on_first_check(self):
        chain = FakeChain(weights={"alice": [BEFORE, AFTER]})
        result = await self.make_engine(chain).process("authority", self.batch("alice", "bob"))
        self.assertEqual(result.state, BatchState.VALIDATED)
        self.assertEqual(result.attempts, 1)
        self.assertEqual(len(chain.pushed), 1)
        self.assertEqual(self.sleep.calls, [1.5])
        self.assertEqual(chain.account_requests, ["alice", "alice"])

    async def test_one_grace_check_before_failing(self):
        chain = FakeChain(weights={"alice": [BEFORE, BEFORE, AFTER]})
        result = await self.make_engine(chain).process("authority", self.batch("alice"))
        self.assertEqual(result.state, BatchState.VALIDATED)
        self.assertEqual(len(chain.pushed), 1)
        self.assertEqual(self.sleep.calls, [1.5, 3.5])

    async def test_two_unchanged_readings_resubmit(self):
        chain = FakeChain(weights={"alice": [BEFORE, BEFORE, BEFORE, AFTER]})
        result = await self.make_engine(chain).process("authority", self.batch("alice"))
        self.assertEqual(result.state, BatchState.VALIDATED)
        self.assertEqual(result.attempts, 2)
        self.assertEqual(len(chain.pushed), 2)
        self.assertEqual(len(result.transaction_ids), 2)
        self.assertEqual(self.sleep.calls, [1.5, 3.5, 1.5])
        # rebuilt from scratch: fresh metadata fetch and a strictly later expiration
        self.assertEqual(chain.info_requests, 2)
        self.assertGreater(expiration_of(chain.pushed[1]), expiration_of(chain.pushed[0]))
        self.assertNotEqual(chain.pushed[0]["signatures"], chain.pushed[1]["signatures"])

    async def test_baseline_taken_once_per_batch(self):
        # A second attempt still compares against the pre-submission weights
        chain = FakeChain(weights={"alice": [BEFORE, BEFORE, BEFORE, BEFORE, BEFORE, AFTER]})
        result = await self.make_engine(chain).process("authority", self.batch("alice"))
        self.assertEqual(result.attempts, 3)
        self.assertEqual(len(chain.account_requests), 1 + 2 + 2 + 1)

    async def test_resubmit_limit_is_injectable(self):
        chain = FakeChain(weights={"alice": [BEFORE]})
        with self.assertRaises(RetryLimitExceeded):
            await self.make_engine(chain, limit=3).process("authority", self.batch("alice"))
        self.assertEqual(len(chain.pushed), 3)

    async def test_push_failure_is_fatal(self):
        chain = FakeChain(weights={"alice": [BEFORE]}, push_error=PushError("pushing transaction: expired"))
        with self.assertRaises(PushError):
            await self.make_engine(chain).process("authority", self.batch("alice"))
        self.assertEqual(self.sleep.calls, [])

    async def test_lookup_failure_is_fatal(self):
        chain = FakeChain(weights={})

        async def missing(account):
            raise AccountLookupError(f"getting account {account}: unknown key")

        chain.get_account = missing
        with self.assertRaises(AccountLookupError):
            await self.make_engine(chain).process("authority", self.batch("alice"))
        self.assertEqual(chain.pushed, [])

    async def test_unreadable_weights_are_fatal(self):
        chain = FakeChain(weights={"alice": [BEFORE]})

        async def broken(account):
            return {"account_name": account}

        chain.get_account = broken
        with self.assertRaises(AccountLookupError):
            await self.make_engine(chain).process("authority", self.batch("alice"))

    async def test_noop_batch_is_not_pushed(self):
        chain = FakeChain(weights={"alice": [(100, 100)]})
        batch = Batch(index=0, records=(record("alice", 100, 100), record("bob", 50, 20)))
        result = await self.make_engine(chain).process("authority", batch)
        self.assertEqual(result.state, BatchState.VALIDATED)
        self.assertEqual(result.attempts, 0)
        self.assertEqual(chain.pushed, [])
        self.assertEqual(self.sleep.calls, [])

    async def test_batches_run_in_order(self):
        records = [record(n, 1000, 1000) for n in ["a1", "a2", "a3", "a4", "a5"]]
        chain = FakeChain(weights={"a1": [BEFORE, AFTER], "a3": [BEFORE, AFTER], "a5": [BEFORE, AFTER]})
        results = await self.make_engine(chain).run("authority", plan(records, 2))
        self.assertEqual([r.index for r in results], [0, 1, 2])
        self.assertEqual([r.reference for r in results], ["a1", "a3", "a5"])
        self.assertEqual(chain.account_requests, ["a1", "a1", "a3", "a3", "a5", "a5"])
        self.assertEqual(len(chain.pushed), 3)
