"""Signature hash (sighash) computation.

Two preimage layouts are supported:

* ``LEGACY`` serializes the whole transaction with the signed input's
  unlocking script replaced by the script code and every other unlocking
  script blanked, masked according to the flag.
* ``VALUE_COMMITTING`` (the BIP143 layout) commits to hashes of the
  prevouts, sequences and outputs plus the exact value being spent, so a
  signature cannot be replayed against a transaction that lies about the
  input amount.

Both functions are pure: identical arguments always give identical bytes.
"""

import enum
import logging
from dataclasses import replace

from p2sh_multisig.encoding import hash256, le32, le64, ser_bytes
from p2sh_multisig.errors import InvalidSigHashFlag
from p2sh_multisig.transaction import TxOutput

logger = logging.getLogger(__name__)

SIGHASH_ALL = 0x01
SIGHASH_NONE = 0x02
SIGHASH_SINGLE = 0x03
SIGHASH_FORKID = 0x40
SIGHASH_ANYONECANPAY = 0x80

BASE_TYPE_MASK = 0x1f
ZERO_HASH = b'\x00' * 32


class SigHashScheme(enum.Enum):
    LEGACY = "legacy"
    VALUE_COMMITTING = "value-committing"


def base_type(flag):
    return flag & BASE_TYPE_MASK


def flag_name(flag):
    name = {SIGHASH_ALL: "ALL", SIGHASH_NONE: "NONE", SIGHASH_SINGLE: "SINGLE"}.get(
        base_type(flag), "0x%02x" % base_type(flag))
    if flag & SIGHASH_FORKID:
        name += "|FORKID"
    if flag & SIGHASH_ANYONECANPAY:
        name += "|ANYONECANPAY"
    return name


def check_flag(flag, tx, input_index, fork_id=None):
    """Reject flags that are non-standard or would sign nothing useful."""
    if not 0 <= flag <= 0xff:
        raise InvalidSigHashFlag(flag & 0xffffffff, "flag must fit in one byte", input_index)
    if base_type(flag) not in (SIGHASH_ALL, SIGHASH_NONE, SIGHASH_SINGLE):
        raise InvalidSigHashFlag(flag, "unknown base type", input_index)
    if flag & ~(BASE_TYPE_MASK | SIGHASH_FORKID | SIGHASH_ANYONECANPAY):
        raise InvalidSigHashFlag(flag, "undefined bits set", input_index)
    if fork_id is not None and not flag & SIGHASH_FORKID:
        raise InvalidSigHashFlag(flag, "network requires the FORKID bit", input_index)
    if fork_id is None and flag & SIGHASH_FORKID:
        raise InvalidSigHashFlag(flag, "network does not use FORKID", input_index)
    if not 0 <= input_index < len(tx.inputs):
        raise InvalidSigHashFlag(flag, "input %d out of range" % input_index, input_index)
    if base_type(flag) == SIGHASH_SINGLE and input_index >= len(tx.outputs):
        # consensus would sign the constant 1 here; refuse instead
        raise InvalidSigHashFlag(flag, "SINGLE without a matching output", input_index)


def legacy_preimage(tx, input_index, script_code, flag):
    check_flag(flag, tx, input_index)
    inputs = [replace(txin, script_sig=b'') for txin in tx.inputs]
    inputs[input_index] = replace(inputs[input_index], script_sig=script_code)
    outputs = list(tx.outputs)

    if base_type(flag) == SIGHASH_NONE:
        outputs = []
    elif base_type(flag) == SIGHASH_SINGLE:
        blank = TxOutput(-1, b'')
        outputs = [blank] * input_index + [outputs[input_index]]

    if base_type(flag) in (SIGHASH_NONE, SIGHASH_SINGLE):
        # other inputs may be updated independently
        inputs = [txin if n == input_index else replace(txin, sequence=0)
                  for n, txin in enumerate(inputs)]

    if flag & SIGHASH_ANYONECANPAY:
        inputs = [inputs[input_index]]

    stripped = replace(tx, inputs=tuple(inputs), outputs=tuple(outputs))
    return stripped.serialize() + le32(flag)


def value_committing_preimage(tx, input_index, script_code, value, flag, fork_id=None):
    check_flag(flag, tx, input_index, fork_id)
    hash_prevouts = ZERO_HASH
    hash_sequence = ZERO_HASH
    hash_outputs = ZERO_HASH
    anyone_can_pay = bool(flag & SIGHASH_ANYONECANPAY)

    if not anyone_can_pay:
        hash_prevouts = hash256(b"".join(i.outpoint.serialize() for i in tx.inputs))

    if not anyone_can_pay and base_type(flag) not in (SIGHASH_SINGLE, SIGHASH_NONE):
        hash_sequence = hash256(b"".join(le32(i.sequence) for i in tx.inputs))

    if base_type(flag) not in (SIGHASH_SINGLE, SIGHASH_NONE):
        hash_outputs = hash256(b"".join(o.serialize() for o in tx.outputs))
    elif base_type(flag) == SIGHASH_SINGLE:
        hash_outputs = hash256(tx.outputs[input_index].serialize())

    txin = tx.inputs[input_index]
    sighash_type = flag
    if fork_id is not None:
        sighash_type |= fork_id << 8

    return (
        le32(tx.version) +
        hash_prevouts +
        hash_sequence +
        txin.outpoint.serialize() +
        ser_bytes(script_code) +
        le64(value) +
        le32(txin.sequence) +
        hash_outputs +
        le32(tx.locktime) +
        le32(sighash_type)
    )


def signature_preimage(tx, input_index, script_code, value, flag,
                       scheme=SigHashScheme.VALUE_COMMITTING, fork_id=None):
    if scheme is SigHashScheme.LEGACY:
        if fork_id is not None:
            raise InvalidSigHashFlag(flag, "FORKID networks only sign value-committing digests", input_index)
        return legacy_preimage(tx, input_index, script_code, flag)
    return value_committing_preimage(tx, input_index, script_code, value, flag, fork_id)


def signature_hash(tx, input_index, script_code, value, flag,
                   scheme=SigHashScheme.VALUE_COMMITTING, fork_id=None):
    """Digest a signer must sign for input `input_index` of `tx`.

    `script_code` is the serialized redeem script; `value` is the amount of
    the output being spent (only committed to by the value-committing scheme).
    """
    digest = hash256(signature_preimage(tx, input_index, script_code, value, flag, scheme, fork_id))
    logger.debug("sighash input=%d flag=%s scheme=%s digest=%s",
                 input_index, flag_name(flag), scheme.value, digest.hex())
    return digest
