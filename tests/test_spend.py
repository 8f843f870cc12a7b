import pytest

from conftest import PRIVATE_KEYS, destination, make_keys, make_utxo
from p2sh_multisig.errors import (InsufficientSignatures, KeyNotInScript, SubmissionError,
                                  VerificationError)
from p2sh_multisig.keys import PrivateKey
from p2sh_multisig.network import BCH_TESTNET
from p2sh_multisig.redeem_script import build_redeem_script
from p2sh_multisig.signer import Signer
from p2sh_multisig.spend import Broadcaster, BroadcastResult, MultisigSpend, UtxoLocator
from p2sh_multisig.transaction import SignedTransaction, Transaction, UnspentOutput


class FakeBroadcaster(Broadcaster):
    def __init__(self, *results):
        self.results = list(results)
        self.sent = []

    def broadcast(self, raw_tx):
        self.sent.append(raw_tx)
        return self.results.pop(0)


class FakeLocator(UtxoLocator):
    def __init__(self, utxos):
        self.utxos = utxos
        self.queried = []

    def unspent_outputs(self, address):
        self.queried.append(address)
        return list(self.utxos)


class BrokenSigner:
    """Stands in for a participant whose key is not part of the script."""

    def __init__(self, pubkey):
        self.pubkey = pubkey

    def sign_input(self, context, flag=None):
        raise KeyNotInScript(bytes(self.pubkey))


@pytest.fixture
def two_of_two(network):
    keys = [PrivateKey.from_hex(k) for k in PRIVATE_KEYS]
    spend = MultisigSpend.from_keys([k.public_key for k in keys], 2, network)
    utxo = make_utxo(spend.redeem_script, 100000)
    tx = spend.build([utxo], [(destination(network), 99000)], fee=1000)
    signers = [Signer(k, spend.redeem_script) for k in keys]
    return spend, utxo, tx, signers


def test_two_of_two_needs_both(two_of_two):
    spend, utxo, tx, (a, b) = two_of_two
    collectors = spend.collectors(tx, [utxo])
    assert spend.collect(collectors, [a]) == []
    with pytest.raises(InsufficientSignatures) as exc:
        spend.finalize(collectors)
    assert exc.value.details["valid"] == 1

    spend.collect(collectors, [b])
    signed = spend.finalize(collectors)
    assert isinstance(signed, SignedTransaction)
    parsed = Transaction.parse(signed.serialize())
    assert len(parsed.inputs) == 1 and len(parsed.outputs) == 1
    assert parsed.outputs[0].value == 99000
    assert parsed.txid == signed.txid
    assert signed.spent_outputs[0].locking_script == utxo.locking_script


def test_signing_order_does_not_matter(two_of_two):
    spend, utxo, tx, (a, b) = two_of_two
    first = spend.collectors(tx, [utxo])
    spend.collect(first, [a, b])
    second = spend.collectors(tx, [utxo])
    spend.collect(second, [b, a])
    assert spend.finalize(first).serialize() == spend.finalize(second).serialize()


def test_address_matches_redeem_script(two_of_two, network):
    spend = two_of_two[0]
    assert spend.address == spend.redeem_script.address(network)
    assert spend.address.to_locking_script() == spend.redeem_script.locking_script()


def test_failing_signer_does_not_disturb_others(network):
    keys = make_keys(4)
    spend = MultisigSpend.from_keys([k.public_key for k in keys[:3]], 2, network)
    utxos = [make_utxo(spend.redeem_script, 40000, index=i) for i in range(2)]
    tx = spend.build(utxos, [(destination(network), 70000)], fee=2000)
    collectors = spend.collectors(tx, utxos)
    signers = [Signer(keys[0], spend.redeem_script), BrokenSigner(keys[3].public_key),
               Signer(keys[2], spend.redeem_script)]
    failures = spend.collect(collectors, signers)
    assert [(f[0], f[1]) for f in failures] == [(signers[1], 0), (signers[1], 1)]
    assert all(c.ready for c in collectors)
    signed = spend.finalize(collectors)
    assert all(i.script_sig for i in signed.transaction.inputs)


def test_finalize_needs_a_collector_per_input(network):
    keys = make_keys(3)
    spend = MultisigSpend.from_keys([k.public_key for k in keys], 2, network)
    utxos = [make_utxo(spend.redeem_script, 40000, index=i) for i in range(2)]
    tx = spend.build(utxos, [(destination(network), 70000)], fee=2000)
    collectors = spend.collectors(tx, utxos)
    spend.collect(collectors, [Signer(k, spend.redeem_script) for k in keys[:2]])
    with pytest.raises(ValueError):
        spend.finalize(collectors[:1])
    with pytest.raises(ValueError):
        spend.finalize([])


def test_submit_accepted(two_of_two):
    spend, utxo, tx, signers = two_of_two
    collectors = spend.collectors(tx, [utxo])
    spend.collect(collectors, signers)
    signed = spend.finalize(collectors)
    broadcaster = FakeBroadcaster(BroadcastResult(True))
    assert spend.submit(signed, broadcaster).accepted
    assert broadcaster.sent == [signed.serialize()]


def test_resubmission_is_idempotent(two_of_two):
    spend, utxo, tx, signers = two_of_two
    collectors = spend.collectors(tx, [utxo])
    spend.collect(collectors, signers)
    signed = spend.finalize(collectors)
    broadcaster = FakeBroadcaster(BroadcastResult(True),
                                  BroadcastResult(False, "txn-already-known", already_known=True))
    spend.submit(signed, broadcaster)
    assert spend.submit(signed, broadcaster).already_known
    assert len(broadcaster.sent) == 2


def test_rejected_submission(two_of_two):
    spend, utxo, tx, signers = two_of_two
    collectors = spend.collectors(tx, [utxo])
    spend.collect(collectors, signers)
    signed = spend.finalize(collectors)
    with pytest.raises(SubmissionError) as exc:
        spend.submit(signed, FakeBroadcaster(BroadcastResult(False, "missing-inputs")))
    assert exc.value.details == {"txid": signed.txid, "reason": "missing-inputs"}


def test_invalid_transaction_is_never_broadcast(two_of_two):
    spend, utxo, tx, signers = two_of_two
    collectors = spend.collectors(tx, [utxo])
    spend.collect(collectors, signers)
    signed = spend.finalize(collectors)
    wrong_value = [UnspentOutput(utxo.outpoint, utxo.value + 1, utxo.locking_script)]
    broadcaster = FakeBroadcaster(BroadcastResult(True))
    if spend.network is BCH_TESTNET:
        with pytest.raises(VerificationError):
            spend.submit(signed, broadcaster, wrong_value)
        assert broadcaster.sent == []

    corrupted = SignedTransaction(signed.transaction.with_script_sig(0, b'\x00'), signed.spent_outputs)
    with pytest.raises(VerificationError):
        spend.submit(corrupted, broadcaster)
    assert broadcaster.sent == []


def test_locate_funds_skips_foreign_outputs(two_of_two, network):
    spend, utxo, _, _ = two_of_two
    other = build_redeem_script([k.public_key for k in make_keys(2)], 1)
    foreign = make_utxo(other, 5000, index=1)
    locator = FakeLocator([utxo, foreign])
    assert spend.locate_funds(locator) == [utxo]
    assert locator.queried == [spend.address]


def test_signing_contexts_need_matching_utxos(two_of_two):
    spend, utxo, tx, _ = two_of_two
    with pytest.raises(ValueError):
        spend.signing_contexts(tx, [utxo, utxo])
