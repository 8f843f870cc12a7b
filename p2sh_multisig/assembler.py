"""Combining partial signatures into a P2SH multisig unlocking script.

OP_CHECKMULTISIG walks the public keys once, in script order, and consumes
signatures greedily. Two valid signatures supplied in the wrong relative
order therefore fail. Signatures are always placed in the order of their
signer's key inside the redeem script, never in arrival order.
"""

import logging
from dataclasses import dataclass
from typing import Tuple

from p2sh_multisig.encoding import push_data
from p2sh_multisig.errors import (DuplicateSigner, InsufficientSignatures, InvalidSigHashFlag,
                                  KeyNotInScript, SignatureError, SignatureMismatch)
from p2sh_multisig.redeem_script import RedeemScript
from p2sh_multisig.script import OP_0
from p2sh_multisig.signer import PartialSignature

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScriptSig:
    signatures: Tuple[PartialSignature, ...]
    redeem_script: RedeemScript

    def serialize(self):
        # OP_0 is consumed by the extra pop in OP_CHECKMULTISIG
        script = bytes([OP_0])
        script += b"".join(push_data(s.script_element()) for s in self.signatures)
        script += push_data(self.redeem_script.serialize())
        return script

    def apply(self, tx, input_index):
        return tx.with_script_sig(input_index, self.serialize())


def order_signatures(redeem_script, signatures):
    """Sort signatures by the position of their key in `redeem_script`."""
    positions = {}
    for sig in signatures:
        index = redeem_script.index_of(sig.pubkey)
        if index is None:
            raise KeyNotInScript(bytes(sig.pubkey))
        positions[id(sig)] = index
    return sorted(signatures, key=lambda s: positions[id(s)])


def validate_partial(context, partial):
    """Raise a SignatureError (or InvalidSigHashFlag) unless `partial` is usable for `context`."""
    if context.redeem_script.index_of(partial.pubkey) is None:
        raise KeyNotInScript(bytes(partial.pubkey))
    if partial.input_index is not None and partial.input_index != context.input_index:
        raise SignatureMismatch(bytes(partial.pubkey), context.input_index)
    partial.check(context.digest(partial.flag))


def assemble_script_sig(context, partial_signatures, strict=False):
    """Validate, de-duplicate and order `partial_signatures` into a ScriptSig.

    Invalid signatures are discarded (or raised when `strict`). More than M
    valid signatures may be supplied; the first M in key order are used.
    """
    redeem_script = context.redeem_script
    valid = {}
    rejected = []
    for partial in partial_signatures:
        try:
            validate_partial(context, partial)
        except (SignatureError, InvalidSigHashFlag) as e:
            if strict:
                raise
            logger.warning("input %d: discarding signature from %s: %s",
                           context.input_index, partial.pubkey.hex(), e)
            rejected.append((partial.pubkey, e))
            continue
        previous = valid.get(partial.pubkey)
        if previous is not None:
            if previous.script_element() == partial.script_element():
                continue
            raise DuplicateSigner(bytes(partial.pubkey), context.input_index)
        valid[partial.pubkey] = partial

    if len(valid) < redeem_script.threshold:
        raise InsufficientSignatures(redeem_script.threshold, len(valid), context.input_index, rejected)

    ordered = order_signatures(redeem_script, list(valid.values()))[:redeem_script.threshold]
    logger.debug("input %d: assembled %d-of-%d script from signers %s", context.input_index,
                 redeem_script.threshold, redeem_script.total, [s.pubkey.hex() for s in ordered])
    return ScriptSig(tuple(ordered), redeem_script)


class SignatureCollector:
    """Gathers partial signatures for one input until a quorum is reached.

    Each signature is checked on arrival; a bad one is reported to the caller
    and does not disturb the ones already collected.
    """

    def __init__(self, context):
        self.context = context
        self._valid = {}
        self.rejected = []

    @property
    def threshold(self):
        return self.context.redeem_script.threshold

    @property
    def ready(self):
        return len(self._valid) >= self.threshold

    @property
    def missing(self):
        return max(0, self.threshold - len(self._valid))

    def signers(self):
        return order_signatures(self.context.redeem_script, list(self._valid.values()))

    def add(self, partial):
        """Record `partial`; raises its SignatureError/AssemblyError if unusable."""
        try:
            validate_partial(self.context, partial)
        except (SignatureError, InvalidSigHashFlag) as e:
            self.rejected.append((partial.pubkey, e))
            raise
        previous = self._valid.get(partial.pubkey)
        if previous is not None and previous.script_element() != partial.script_element():
            raise DuplicateSigner(bytes(partial.pubkey), self.context.input_index)
        self._valid[partial.pubkey] = partial
        if self.ready:
            logger.info("input %d: quorum reached (%d of %d required)",
                        self.context.input_index, len(self._valid), self.threshold)
        return self.missing

    def assemble(self):
        if not self.ready:
            raise InsufficientSignatures(self.threshold, len(self._valid),
                                         self.context.input_index, self.rejected)
        return assemble_script_sig(self.context, self._valid.values(), strict=True)
