"""M-of-N redeem script construction and locking address derivation.

Keys are sorted by their serialized bytes before the script is built, so any
participant holding the same key set derives the same script and address
without a coordinator. Pass ``sort_keys=False`` to keep the caller's order.
"""

import functools
import logging
from dataclasses import dataclass
from typing import Tuple

from p2sh_multisig.encoding import hash160, push_data
from p2sh_multisig.errors import (DuplicateKey, InvalidThreshold, MalformedScript,
                                  ScriptTooLarge)
from p2sh_multisig.keys import PublicKey
from p2sh_multisig.script import (MAX_SCRIPT_ELEMENT_SIZE, OP_CHECKMULTISIG, decode_small_int,
                                  is_small_int, iter_script, p2pkh_locking_script,
                                  p2sh_locking_script, small_int_opcode)

logger = logging.getLogger(__name__)

P2SH = "p2sh"
P2PKH = "p2pkh"


@dataclass(frozen=True)
class LockingAddress:
    """Network version byte plus a 20 byte hash commitment."""
    version: int
    hash: bytes
    kind: str = P2SH

    def __post_init__(self):
        if len(self.hash) != 20:
            raise ValueError("address hash must be 20 bytes")
        if self.kind not in (P2SH, P2PKH):
            raise ValueError("unknown address kind %r" % self.kind)

    @classmethod
    def for_script(cls, script, network):
        return cls(network.p2sh_version, hash160(bytes(script)), P2SH)

    @classmethod
    def for_public_key(cls, pubkey, network):
        return cls(network.p2pkh_version, PublicKey(pubkey).hash160(), P2PKH)

    @property
    def payload(self):
        return bytes([self.version]) + self.hash

    def to_locking_script(self):
        if self.kind == P2SH:
            return p2sh_locking_script(self.hash)
        return p2pkh_locking_script(self.hash)

    def __str__(self):
        return "%s:%s" % (self.kind, self.payload.hex())


@dataclass(frozen=True)
class RedeemScript:
    threshold: int
    pubkeys: Tuple[PublicKey, ...]

    def __post_init__(self):
        object.__setattr__(self, "pubkeys", tuple(self.pubkeys))
        _validate(self.threshold, self.pubkeys)

    @property
    def total(self):
        return len(self.pubkeys)

    def serialize(self):
        return _serialize(self.threshold, tuple(bytes(k) for k in self.pubkeys))

    def __bytes__(self):
        return self.serialize()

    def hex(self):
        return self.serialize().hex()

    def index_of(self, pubkey):
        """Position of `pubkey` in script order, or None."""
        try:
            return self.pubkeys.index(pubkey)
        except ValueError:
            return None

    def address(self, network):
        return LockingAddress.for_script(self.serialize(), network)

    def locking_script(self):
        return p2sh_locking_script(hash160(self.serialize()))

    def matches(self, locking_script):
        """True if `locking_script` is the P2SH commitment to this script."""
        return bytes(locking_script) == self.locking_script()

    @classmethod
    def parse(cls, script):
        """Rebuild a RedeemScript from its serialized form."""
        script = bytes(script)
        elements = list(iter_script(script))
        if len(elements) < 4 or elements[-1][0] != OP_CHECKMULTISIG:
            raise MalformedScript(script, "not a multisig script")
        m_op, n_op = elements[0][0], elements[-2][0]
        if not (is_small_int(m_op) and is_small_int(n_op)):
            raise MalformedScript(script, "threshold and key count must be small integers")
        keys = []
        for opcode, data, _ in elements[1:-2]:
            if not data:
                raise MalformedScript(script, "expected a public key push")
            keys.append(PublicKey(data))
        if decode_small_int(n_op) != len(keys):
            raise MalformedScript(script, "key count does not match OP_N")
        parsed = cls(decode_small_int(m_op), tuple(keys))
        if parsed.serialize() != script:
            raise MalformedScript(script, "non-canonical encoding")
        return parsed


def _validate(threshold, pubkeys):
    if not 1 <= threshold <= len(pubkeys):
        raise InvalidThreshold(threshold, len(pubkeys))
    seen = set()
    for key in pubkeys:
        if key in seen:
            raise DuplicateKey(bytes(key))
        seen.add(key)
    size = 3 + sum(len(push_data(bytes(k))) for k in pubkeys)
    if size > MAX_SCRIPT_ELEMENT_SIZE:
        raise ScriptTooLarge(size, MAX_SCRIPT_ELEMENT_SIZE)


@functools.lru_cache(maxsize=256)
def _serialize(threshold, raw_keys):
    # OP_M <pk_1> ... <pk_N> OP_N OP_CHECKMULTISIG
    script = bytes([small_int_opcode(threshold)])
    script += b"".join(push_data(k) for k in raw_keys)
    script += bytes([small_int_opcode(len(raw_keys)), OP_CHECKMULTISIG])
    return script


def build_redeem_script(pubkeys, threshold, sort_keys=True):
    """Build the `threshold`-of-len(`pubkeys`) script.

    Raises InvalidThreshold, DuplicateKey, InvalidPublicKey or ScriptTooLarge.
    """
    keys = [k if isinstance(k, PublicKey) else PublicKey(k) for k in pubkeys]
    if sort_keys:
        keys.sort()
    redeem_script = RedeemScript(threshold, tuple(keys))
    logger.debug("built %d-of-%d redeem script %s", threshold, len(keys), redeem_script.hex())
    return redeem_script


def derive_address(pubkeys, threshold, network, sort_keys=True):
    """Return ``(redeem_script, address)``; keep the script, it cannot be recovered from the address."""
    redeem_script = build_redeem_script(pubkeys, threshold, sort_keys=sort_keys)
    address = redeem_script.address(network)
    logger.debug("derived %s address %s", network.name, address)
    return redeem_script, address
