"""Transaction model and its wire serialization."""

import struct
from dataclasses import dataclass, field, replace
from typing import Tuple

from p2sh_multisig.encoding import hash256, le32, le64, ser_bytes, ser_varint

DEFAULT_SEQUENCE = 0xffffffff
TX_VERSION = 1


@dataclass(frozen=True)
class OutPoint:
    txid: str  # display (big endian) hex, as block explorers show it
    index: int

    def __post_init__(self):
        if len(bytes.fromhex(self.txid)) != 32:
            raise ValueError("txid must be 32 bytes of hex")
        if not 0 <= self.index <= 0xffffffff:
            raise ValueError("output index out of range")
        object.__setattr__(self, "txid", self.txid.lower())

    def serialize(self):
        return bytes.fromhex(self.txid)[::-1] + le32(self.index)

    def __str__(self):
        return "%s:%d" % (self.txid, self.index)


@dataclass(frozen=True)
class UnspentOutput:
    """Read-only snapshot of a spendable output handed over by the UTXO locator."""
    outpoint: OutPoint
    value: int
    locking_script: bytes

    @classmethod
    def from_hex(cls, txid, index, value, locking_script_hex):
        return cls(OutPoint(txid, index), value, bytes.fromhex(locking_script_hex))


@dataclass(frozen=True)
class TxInput:
    outpoint: OutPoint
    script_sig: bytes = b''
    sequence: int = DEFAULT_SEQUENCE

    def serialize(self):
        return self.outpoint.serialize() + ser_bytes(self.script_sig) + le32(self.sequence)


@dataclass(frozen=True)
class TxOutput:
    value: int
    locking_script: bytes

    def serialize(self):
        return le64(self.value) + ser_bytes(self.locking_script)


@dataclass(frozen=True)
class Transaction:
    inputs: Tuple[TxInput, ...]
    outputs: Tuple[TxOutput, ...]
    version: int = TX_VERSION
    locktime: int = 0

    def __post_init__(self):
        object.__setattr__(self, "inputs", tuple(self.inputs))
        object.__setattr__(self, "outputs", tuple(self.outputs))

    def serialize(self):
        return (
            struct.pack("<i", self.version) +
            ser_varint(len(self.inputs)) + b"".join(i.serialize() for i in self.inputs) +
            ser_varint(len(self.outputs)) + b"".join(o.serialize() for o in self.outputs) +
            le32(self.locktime)
        )

    @property
    def txid(self):
        return hash256(self.serialize())[::-1].hex()

    @property
    def is_unsigned(self):
        return all(not i.script_sig for i in self.inputs)

    def with_script_sig(self, index, script_sig):
        """Return a copy with input `index` unlocked by `script_sig`."""
        if not 0 <= index < len(self.inputs):
            raise IndexError("input %d out of range" % index)
        inputs = list(self.inputs)
        inputs[index] = replace(inputs[index], script_sig=script_sig)
        return replace(self, inputs=tuple(inputs))

    @classmethod
    def parse(cls, raw):
        """Parse legacy (non-witness) wire bytes."""
        stream = _Reader(raw)
        version = struct.unpack("<i", stream.read(4))[0]
        inputs = []
        for _ in range(stream.varint()):
            txid = stream.read(32)[::-1].hex()
            index = struct.unpack("<I", stream.read(4))[0]
            script_sig = stream.read(stream.varint())
            sequence = struct.unpack("<I", stream.read(4))[0]
            inputs.append(TxInput(OutPoint(txid, index), script_sig, sequence))
        outputs = []
        for _ in range(stream.varint()):
            value = struct.unpack("<q", stream.read(8))[0]
            outputs.append(TxOutput(value, stream.read(stream.varint())))
        locktime = struct.unpack("<I", stream.read(4))[0]
        if not stream.exhausted:
            raise ValueError("trailing bytes after transaction")
        return cls(tuple(inputs), tuple(outputs), version, locktime)


@dataclass(frozen=True)
class SignedTransaction:
    """A transaction whose every input carries an unlocking script."""
    transaction: Transaction
    spent_outputs: Tuple[UnspentOutput, ...] = field(default=())

    def __post_init__(self):
        missing = [n for n, i in enumerate(self.transaction.inputs) if not i.script_sig]
        if missing:
            raise ValueError("inputs %s have no unlocking script" % missing)
        object.__setattr__(self, "spent_outputs", tuple(self.spent_outputs))

    @property
    def txid(self):
        return self.transaction.txid

    def serialize(self):
        return self.transaction.serialize()

    def hex(self):
        return self.serialize().hex()


class _Reader:
    def __init__(self, data):
        self._data = data
        self._pos = 0

    def read(self, n):
        if self._pos + n > len(self._data):
            raise ValueError("unexpected end of transaction data")
        chunk = self._data[self._pos:self._pos + n]
        self._pos += n
        return chunk

    def varint(self):
        prefix = self.read(1)[0]
        if prefix < 0xfd:
            return prefix
        width = {0xfd: 2, 0xfe: 4, 0xff: 8}[prefix]
        return int.from_bytes(self.read(width), "little")

    @property
    def exhausted(self):
        return self._pos == len(self._data)
