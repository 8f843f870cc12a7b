from dataclasses import replace

import pytest

from conftest import destination, make_keys, make_utxo
from p2sh_multisig.assembler import ScriptSig, assemble_script_sig
from p2sh_multisig.builder import build_spend
from p2sh_multisig.context import SigningContext
from p2sh_multisig.encoding import push_data
from p2sh_multisig.errors import VerificationError
from p2sh_multisig.network import BCH_TESTNET, BITCOIN_TESTNET
from p2sh_multisig.redeem_script import build_redeem_script
from p2sh_multisig.script import OP_1, OP_NOP, OP_RETURN
from p2sh_multisig.signer import Signer
from p2sh_multisig.verifier import (Reason, cast_to_bool, check_address_commitment,
                                    first_failure, verify_input, verify_transaction)

VALUE = 100000


def signed_spend(network, n=3, m=2, signers=None):
    keys = make_keys(n)
    redeem = build_redeem_script([k.public_key for k in keys], m)
    utxo = make_utxo(redeem, VALUE)
    tx = build_spend(redeem, [utxo], [(destination(network), VALUE - 1000)], network, fee=1000)
    context = SigningContext(tx, 0, redeem, VALUE, network)
    chosen = keys[:m] if signers is None else [keys[i] for i in signers]
    partials = [Signer(k, redeem).sign_input(context) for k in chosen]
    script_sig = assemble_script_sig(context, partials)
    return script_sig.apply(tx, 0), utxo, script_sig


def with_script_sig(tx, script_sig):
    return tx.with_script_sig(0, script_sig)


def check(tx, utxo, network, value=None):
    return verify_input(tx, 0, utxo.locking_script, utxo.value if value is None else value, network)


def test_valid_spend(network):
    tx, utxo, _ = signed_spend(network)
    result = check(tx, utxo, network)
    assert result.ok
    assert bool(result)
    assert result.raise_for_failure() is result


def test_signatures_in_wrong_order_fail(network):
    tx, utxo, script_sig = signed_spend(network)
    swapped = ScriptSig(tuple(reversed(script_sig.signatures)), script_sig.redeem_script)
    result = check(with_script_sig(tx, swapped.serialize()), utxo, network)
    assert result.reason is Reason.EVAL_FALSE


def test_mutated_redeem_script_is_hash_mismatch(network):
    tx, utxo, script_sig = signed_spend(network)
    raw = script_sig.serialize()
    redeem = script_sig.redeem_script.serialize()
    start = len(raw) - len(redeem)
    assert raw[start:] == redeem
    for position in range(start, len(raw)):
        mutated = raw[:position] + bytes([raw[position] ^ 0x01]) + raw[position + 1:]
        result = check(with_script_sig(tx, mutated), utxo, network)
        assert result.reason is Reason.SCRIPT_HASH_MISMATCH, position


def test_non_null_dummy(network):
    tx, utxo, script_sig = signed_spend(network)
    raw = script_sig.serialize()
    for dummy in (bytes([OP_1]), b'\x01\x00'):
        result = check(with_script_sig(tx, dummy + raw[1:]), utxo, network)
        assert result.reason is Reason.SIG_NULLDUMMY


def test_non_minimal_push(network):
    tx, utxo, script_sig = signed_spend(network)
    raw = b'\x01\x05' + script_sig.serialize()
    assert check(with_script_sig(tx, raw), utxo, network).reason is Reason.MINIMALDATA


def test_script_sig_must_be_push_only(network):
    tx, utxo, script_sig = signed_spend(network)
    raw = script_sig.serialize() + bytes([OP_NOP])
    assert check(with_script_sig(tx, raw), utxo, network).reason is Reason.SIG_PUSHONLY


def test_extra_stack_item_fails_cleanstack(network):
    tx, utxo, script_sig = signed_spend(network)
    raw = bytes([OP_1]) + script_sig.serialize()
    result = check(with_script_sig(tx, raw), utxo, network)
    assert result.reason is Reason.CLEANSTACK


def test_missing_signature_fails(network):
    tx, utxo, script_sig = signed_spend(network)
    partial = ScriptSig(script_sig.signatures[:1], script_sig.redeem_script)
    result = check(with_script_sig(tx, partial.serialize()), utxo, network)
    assert not result.ok


def test_truncated_script_sig(network):
    tx, utxo, script_sig = signed_spend(network)
    raw = script_sig.serialize()[:-5]
    assert check(with_script_sig(tx, raw), utxo, network).reason is Reason.BAD_SCRIPT


def test_unsigned_input_fails(network):
    tx, utxo, _ = signed_spend(network)
    assert not check(with_script_sig(tx, b''), utxo, network).ok


def test_value_is_committed_only_by_value_committing_scheme():
    tx, utxo, _ = signed_spend(BCH_TESTNET)
    assert check(tx, utxo, BCH_TESTNET).ok
    assert check(tx, utxo, BCH_TESTNET, value=VALUE - 1).reason is Reason.EVAL_FALSE

    tx, utxo, _ = signed_spend(BITCOIN_TESTNET)
    assert check(tx, utxo, BITCOIN_TESTNET, value=VALUE - 1).ok


def test_forkid_signature_rejected_on_legacy_network():
    tx, utxo, _ = signed_spend(BCH_TESTNET)
    assert check(tx, utxo, BITCOIN_TESTNET).reason is Reason.SIG_HASHTYPE


def test_tampered_output_invalidates_signature(network):
    tx, utxo, _ = signed_spend(network)
    output = replace(tx.outputs[0], value=tx.outputs[0].value - 1)
    tampered = replace(tx, outputs=(output,))
    assert check(tampered, utxo, network).reason is Reason.EVAL_FALSE


def test_any_quorum_subset_verifies(network):
    for signers in ([0, 1], [0, 2], [1, 2]):
        tx, utxo, _ = signed_spend(network, signers=signers)
        assert check(tx, utxo, network).ok


def test_op_return_locking_script(network):
    tx, utxo, _ = signed_spend(network)
    result = verify_input(tx, 0, bytes([OP_RETURN]), VALUE, network)
    assert result.reason is Reason.OP_RETURN


def test_input_index_out_of_range(network):
    tx, utxo, _ = signed_spend(network)
    assert verify_input(tx, 3, utxo.locking_script, VALUE, network).reason is Reason.INPUT_INDEX


def test_raise_for_failure(network):
    tx, utxo, _ = signed_spend(network)
    result = check(with_script_sig(tx, push_data(b'\x00' * 3)), utxo, network)
    with pytest.raises(VerificationError) as exc:
        result.raise_for_failure()
    assert exc.value.result is result
    assert exc.value.details["input_index"] == 0


def test_verify_transaction(network):
    tx, utxo, _ = signed_spend(network)
    results = verify_transaction(tx, [utxo], network)
    assert [r.ok for r in results] == [True]
    assert first_failure(results) is None
    with pytest.raises(ValueError):
        verify_transaction(tx, [], network)


def test_address_commitment(two_of_three):
    _, redeem = two_of_three
    other = build_redeem_script(list(redeem.pubkeys), 1)
    address = redeem.address(BITCOIN_TESTNET)
    assert check_address_commitment(redeem, address)
    assert not check_address_commitment(other, address)


@pytest.mark.parametrize("data,expected", [
    (b'', False),
    (b'\x00', False),
    (b'\x00\x80', False),
    (b'\x80', False),
    (b'\x01', True),
    (b'\x00\x01', True),
    (b'\x80\x00', True),
])
def test_cast_to_bool(data, expected):
    assert cast_to_bool(data) is expected
