"""End-to-end spend workflow around the core.

The UTXO locator and the broadcaster are collaborators supplied by the
caller; this module never talks to the network itself and never waits.
"""

import abc
import logging
from dataclasses import dataclass

from p2sh_multisig.assembler import SignatureCollector
from p2sh_multisig.builder import build_spend
from p2sh_multisig.context import SigningContext
from p2sh_multisig.errors import SignatureError, SubmissionError, VerificationError
from p2sh_multisig.redeem_script import build_redeem_script
from p2sh_multisig.transaction import SignedTransaction, UnspentOutput
from p2sh_multisig.verifier import first_failure, verify_transaction

logger = logging.getLogger(__name__)


class UtxoLocator(abc.ABC):
    @abc.abstractmethod
    def unspent_outputs(self, address):
        """Return the UnspentOutputs currently spendable to `address`."""


@dataclass(frozen=True)
class BroadcastResult:
    accepted: bool
    reason: str = ""
    already_known: bool = False


class Broadcaster(abc.ABC):
    @abc.abstractmethod
    def broadcast(self, raw_tx):
        """Hand wire bytes to the network; return a BroadcastResult."""


class MultisigSpend:
    """Explicit context for spending from one M-of-N P2SH address."""

    def __init__(self, redeem_script, network, scheme=None):
        self.redeem_script = redeem_script
        self.network = network
        self.scheme = scheme or network.sighash_scheme

    @classmethod
    def from_keys(cls, pubkeys, threshold, network, sort_keys=True, scheme=None):
        return cls(build_redeem_script(pubkeys, threshold, sort_keys=sort_keys), network, scheme)

    @property
    def address(self):
        return self.redeem_script.address(self.network)

    def locate_funds(self, locator):
        expected = self.redeem_script.locking_script()
        utxos = []
        for utxo in locator.unspent_outputs(self.address):
            if utxo.locking_script != expected:
                logger.warning("ignoring %s: not locked to %s", utxo.outpoint, self.address)
                continue
            utxos.append(utxo)
        logger.debug("located %d spendable outputs worth %d", len(utxos), sum(u.value for u in utxos))
        return utxos

    def build(self, utxos, destinations, fee=None, fee_policy=None, change_address=None, **kwargs):
        return build_spend(self.redeem_script, utxos, destinations, self.network, fee=fee,
                           fee_policy=fee_policy, change_address=change_address, **kwargs)

    def signing_contexts(self, tx, utxos):
        utxos = list(utxos)
        if len(utxos) != len(tx.inputs):
            raise ValueError("need one spent output per input")
        return [SigningContext(tx, n, self.redeem_script, utxo.value, self.network, self.scheme)
                for n, utxo in enumerate(utxos)]

    def collectors(self, tx, utxos):
        return [SignatureCollector(ctx) for ctx in self.signing_contexts(tx, utxos)]

    def collect(self, collectors, signers, flag=None):
        """Have every signer sign every input.

        A failing signer is skipped and its error recorded; signatures
        already gathered from the others are kept. Returns the failures as
        ``(signer, input_index, error)`` tuples.
        """
        failures = []
        for signer in signers:
            for collector in collectors:
                try:
                    collector.add(signer.sign_input(collector.context, flag))
                except SignatureError as e:
                    logger.warning("signer %s failed on input %d: %s",
                                   signer.pubkey.hex(), collector.context.input_index, e)
                    failures.append((signer, collector.context.input_index, e))
        return failures

    def finalize(self, collectors):
        """Assemble every input and verify the result.

        Raises AssemblyError if any input lacks a quorum and VerificationError
        if local evaluation rejects any input.
        """
        if not collectors:
            raise ValueError("nothing to finalize")
        tx = collectors[0].context.transaction
        spent = []
        for collector in collectors:
            if collector.context.transaction != collectors[0].context.transaction:
                raise ValueError("collectors belong to different transactions")
            tx = collector.assemble().apply(tx, collector.context.input_index)
            spent.append(collector.context)
        spent.sort(key=lambda ctx: ctx.input_index)
        if [ctx.input_index for ctx in spent] != list(range(len(tx.inputs))):
            raise ValueError("need exactly one collector per input")
        utxos = [UnspentOutput(tx.inputs[ctx.input_index].outpoint, ctx.value, ctx.redeem_script.locking_script())
                 for ctx in spent]
        failure = first_failure(verify_transaction(tx, utxos, self.network, self.scheme))
        if failure is not None:
            raise VerificationError(failure)
        signed = SignedTransaction(tx, tuple(utxos))
        logger.info("signed transaction %s ready (%d bytes)", signed.txid, len(signed.serialize()))
        return signed

    def submit(self, signed, broadcaster, spent_outputs=None):
        """Verify again, then hand the transaction to `broadcaster`.

        A rejection raises SubmissionError. A broadcaster reporting the
        transaction as already known counts as success, so resubmitting is safe.
        """
        if spent_outputs is None:
            spent_outputs = signed.spent_outputs
        failure = first_failure(verify_transaction(signed.transaction, spent_outputs,
                                                   self.network, self.scheme))
        if failure is not None:
            raise VerificationError(failure)
        result = broadcaster.broadcast(signed.serialize())
        if result.accepted or result.already_known:
            logger.info("transaction %s %s", signed.txid,
                        "already known" if result.already_known else "accepted")
            return result
        raise SubmissionError(signed.txid, result.reason)
