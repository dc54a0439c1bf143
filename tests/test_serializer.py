"""Test binary packing of names, actions and transactions."""

from datetime import datetime, timezone
from unittest import TestCase

from unstaker.serializer import (
    PendingTransaction,
    TxOptions,
    name_to_int,
    pack_varuint32,
)
from unstaker.builder import undelegate_action
from tests.fakes import CHAIN_ID, HEAD_BLOCK_ID, wax


class NameTests(TestCase):
    def test_known_names(self):
        self.assertEqual(name_to_int("eosio"), 0x5530EA0000000000)
        self.assertEqual(name_to_int(""), 0)

    def test_dots_and_thirteenth_character(self):
        self.assertEqual(name_to_int("a"), 0x3000000000000000)
        self.assertEqual(name_to_int("a.b"), 0x300E000000000000)
        self.assertEqual(name_to_int("zzzzzzzzzzzzj"), 0xFFFFFFFFFFFFFFFF)

    def test_invalid(self):
        for name in ["UPPER", "has6", "toolongname123", "zzzzzzzzzzzzz"]:
            with self.subTest(name=name):
                with self.assertRaises(ValueError):
                    name_to_int(name)


class PackingTests(TestCase):
    def test_varuint32(self):
        self.assertEqual(pack_varuint32(0), b"\x00")
        self.assertEqual(pack_varuint32(127), b"\x7f")
        self.assertEqual(pack_varuint32(300), b"\xac\x02")

    def test_tx_options_from_info(self):
        opts = TxOptions.from_info({"chain_id": CHAIN_ID, "head_block_id": HEAD_BLOCK_ID})
        self.assertEqual(opts.ref_block_num, 0x1234)
        self.assertEqual(opts.ref_block_prefix, 0x12345678)

    def test_transaction_layout(self):
        action = undelegate_action("authority", "delegatee1", wax(400), wax(300))
        expiration = datetime(2026, 1, 1, tzinfo=timezone.utc)
        tx = PendingTransaction(
            actions=[action],
            expiration=expiration,
            options=TxOptions(chain_id=CHAIN_ID, ref_block_num=0x1234, ref_block_prefix=0x12345678),
        )
        packed = tx.pack()
        self.assertEqual(int.from_bytes(packed[:4], "little"), int(expiration.timestamp()))
        self.assertEqual(packed[4:6], b"\x34\x12")
        self.assertEqual(packed[6:10], b"\x78\x56\x34\x12")
        # max_net_usage_words, max_cpu_usage_ms, delay_sec, no context free actions, one action
        self.assertEqual(packed[10:15], b"\x00\x00\x00\x00\x01")
        self.assertEqual(packed[-1:], b"\x00")
        self.assertIn(action.pack(), packed)
        # from, receiver, two 16-byte assets
        self.assertEqual(len(action.data.pack()), 8 + 8 + 16 + 16)
        self.assertEqual(len(tx.signing_digest()), 32)

    def test_packed_requires_signature(self):
        tx = PendingTransaction(
            actions=[],
            expiration=datetime(2026, 1, 1, tzinfo=timezone.utc),
            options=TxOptions(chain_id=CHAIN_ID, ref_block_num=1, ref_block_prefix=2),
        )
        with self.assertRaises(ValueError):
            tx.packed()
        tx.signatures.append("SIG_K1_x")
        payload = tx.packed().to_push_payload()
        self.assertEqual(payload["compression"], "none")
        self.assertEqual(payload["signatures"], ["SIG_K1_x"])
        self.assertEqual(payload["packed_trx"], tx.pack().hex())
