"""EOSIO binary serialization for the handful of types an undelegate transaction needs."""

import hashlib
import struct
from dataclasses import dataclass, field
from datetime import datetime, timezone

from unstaker.asset import Asset

MAX_NAME_LENGTH = 13


def _char_value(c: str) -> int:
    if "a" <= c <= "z":
        return ord(c) - ord("a") + 6
    if "1" <= c <= "5":
        return ord(c) - ord("1") + 1
    if c == ".":
        return 0
    raise ValueError(f"invalid character {c!r} in name")


def name_to_int(name: str) -> int:
    """Encode an account/action/permission name into the chain's uint64 form.

    The first 12 characters take 5 bits each from the top down; a 13th
    character only gets the remaining 4 bits.
    """
    if len(name) > MAX_NAME_LENGTH:
        raise ValueError(f"name longer than {MAX_NAME_LENGTH} characters: {name!r}")
    value = 0
    for i in range(MAX_NAME_LENGTH):
        c = _char_value(name[i]) if i < len(name) else 0
        if i < 12:
            value |= (c & 0x1F) << (64 - 5 * (i + 1))
        else:
            if c > 0x0F:
                raise ValueError(f"13th character of name must be in [.1-5a-j]: {name!r}")
            value |= c & 0x0F
    return value


def pack_name(name: str) -> bytes:
    return struct.pack("<Q", name_to_int(name))


def pack_varuint32(n: int) -> bytes:
    if n < 0 or n > 0xFFFFFFFF:
        raise ValueError(f"varuint32 out of range: {n}")
    out = bytearray()
    while True:
        b = n & 0x7F
        n >>= 7
        if n:
            out.append(b | 0x80)
        else:
            out.append(b)
            return bytes(out)


def pack_bytes(data: bytes) -> bytes:
    return pack_varuint32(len(data)) + data


@dataclass(frozen=True, slots=True)
class PermissionLevel:
    actor: str
    permission: str

    def pack(self) -> bytes:
        return pack_name(self.actor) + pack_name(self.permission)

    def __str__(self):
        return f"{self.actor}@{self.permission}"


@dataclass(frozen=True, slots=True)
class UndelegateData:
    """Payload of eosio::undelegatebw."""

    sender: str
    receiver: str
    unstake_net_quantity: Asset
    unstake_cpu_quantity: Asset

    def pack(self) -> bytes:
        return (
            pack_name(self.sender)
            + pack_name(self.receiver)
            + self.unstake_net_quantity.to_bytes()
            + self.unstake_cpu_quantity.to_bytes()
        )

    def to_json(self) -> dict:
        return {
            "from": self.sender,
            "receiver": self.receiver,
            "unstake_net_quantity": str(self.unstake_net_quantity),
            "unstake_cpu_quantity": str(self.unstake_cpu_quantity),
        }


@dataclass(frozen=True, slots=True)
class Action:
    account: str
    name: str
    authorization: tuple[PermissionLevel, ...]
    data: UndelegateData

    def pack(self) -> bytes:
        auth = pack_varuint32(len(self.authorization)) + b"".join(p.pack() for p in self.authorization)
        return pack_name(self.account) + pack_name(self.name) + auth + pack_bytes(self.data.pack())

    def to_json(self) -> dict:
        return {
            "account": self.account,
            "name": self.name,
            "authorization": [{"actor": p.actor, "permission": p.permission} for p in self.authorization],
            "data": self.data.to_json(),
        }


@dataclass(frozen=True, slots=True)
class TxOptions:
    """Chain metadata a transaction header is anchored to."""

    chain_id: str
    ref_block_num: int
    ref_block_prefix: int

    @classmethod
    def from_info(cls, info: dict) -> "TxOptions":
        """Derive reference block fields from a get_info result's head block id."""
        block_id = bytes.fromhex(info["head_block_id"])
        if len(block_id) != 32:
            raise ValueError(f"unexpected block id length {len(block_id)}")
        return cls(
            chain_id=info["chain_id"],
            ref_block_num=struct.unpack(">I", block_id[:4])[0] & 0xFFFF,
            ref_block_prefix=struct.unpack("<I", block_id[8:12])[0],
        )


@dataclass(slots=True)
class PendingTransaction:
    actions: list[Action]
    expiration: datetime
    options: TxOptions
    signatures: list[str] = field(default_factory=list)
    max_net_usage_words: int = 0
    max_cpu_usage_ms: int = 0
    delay_sec: int = 0

    def pack(self) -> bytes:
        expiration = int(self.expiration.replace(tzinfo=self.expiration.tzinfo or timezone.utc).timestamp())
        header = struct.pack(
            "<IHI",
            expiration,
            self.options.ref_block_num,
            self.options.ref_block_prefix,
        )
        header += pack_varuint32(self.max_net_usage_words)
        header += struct.pack("<B", self.max_cpu_usage_ms)
        header += pack_varuint32(self.delay_sec)
        context_free_actions = pack_varuint32(0)
        actions = pack_varuint32(len(self.actions)) + b"".join(a.pack() for a in self.actions)
        extensions = pack_varuint32(0)
        return header + context_free_actions + actions + extensions

    def signing_digest(self) -> bytes:
        # No context-free data, so its digest is 32 zero bytes
        return hashlib.sha256(bytes.fromhex(self.options.chain_id) + self.pack() + bytes(32)).digest()

    def packed(self) -> "PackedTransaction":
        if not self.signatures:
            raise ValueError("transaction has no signatures")
        return PackedTransaction(signatures=list(self.signatures), packed_trx=self.pack().hex())


@dataclass(frozen=True, slots=True)
class PackedTransaction:
    signatures: list[str]
    packed_trx: str
    compression: str = "none"
    packed_context_free_data: str = ""

    @property
    def transaction_id(self) -> str:
        return hashlib.sha256(bytes.fromhex(self.packed_trx)).hexdigest()

    def to_push_payload(self) -> dict:
        return {
            "signatures": self.signatures,
            "compression": self.compression,
            "packed_context_free_data": self.packed_context_free_data,
            "packed_trx": self.packed_trx,
        }
