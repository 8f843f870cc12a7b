"""Unsigned transaction assembly from supplied unspent outputs.

Inputs keep the order they are supplied in and outputs keep request order
(an optional change output goes last); both orders are committed to by the
signature hashes. Coin selection is the caller's job.
"""

import logging

from p2sh_multisig.encoding import push_data, ser_varint
from p2sh_multisig.errors import (DustOutput, InsufficientFunds, NoInputsProvided,
                                  UnexpectedLockingScript, ValidationError)
from p2sh_multisig.transaction import (DEFAULT_SEQUENCE, TX_VERSION, Transaction, TxInput,
                                       TxOutput)

logger = logging.getLogger(__name__)

# DER signature with low S plus the sighash flag byte, worst case
MAX_SIGNATURE_ELEMENT = 73


def _locking_script(destination):
    if isinstance(destination, (bytes, bytearray)):
        return bytes(destination)
    return destination.to_locking_script()


def unlocking_script_size(redeem_script):
    return 1 + redeem_script.threshold * (1 + MAX_SIGNATURE_ELEMENT) + len(push_data(redeem_script.serialize()))


def estimate_size(redeem_script, input_count, output_scripts):
    """Upper bound of the signed transaction size in bytes."""
    script_sig = unlocking_script_size(redeem_script)
    per_input = 32 + 4 + len(ser_varint(script_sig)) + script_sig + 4
    outputs = sum(8 + len(ser_varint(len(s))) + len(s) for s in output_scripts)
    return (4 + len(ser_varint(input_count)) + input_count * per_input
            + len(ser_varint(len(output_scripts))) + outputs + 4)


def build_spend(redeem_script, utxos, destinations, network, fee=None, fee_policy=None,
                change_address=None, sequence=DEFAULT_SEQUENCE, locktime=0, version=TX_VERSION):
    """Build the unsigned transaction spending `utxos` to `destinations`.

    `destinations` is a list of ``(address_or_locking_script, value)`` pairs.
    Exactly one of `fee` (absolute amount) and `fee_policy` (a callable
    taking the estimated size in bytes and returning a fee) is required.
    """
    utxos = list(utxos)
    if not utxos:
        raise NoInputsProvided()
    expected = redeem_script.locking_script()
    for utxo in utxos:
        if utxo.locking_script != expected:
            raise UnexpectedLockingScript(utxo.outpoint, utxo.locking_script, expected)
    seen = set()
    for utxo in utxos:
        if utxo.outpoint in seen:
            raise ValidationError("outpoint %s supplied twice" % utxo.outpoint, outpoint=utxo.outpoint)
        seen.add(utxo.outpoint)

    if not destinations:
        raise ValidationError("at least one destination is required")
    outputs = []
    for index, (destination, value) in enumerate(destinations):
        if value < network.dust_limit:
            raise DustOutput(index, value, network.dust_limit)
        outputs.append(TxOutput(value, _locking_script(destination)))

    if (fee is None) == (fee_policy is None):
        raise ValueError("pass exactly one of fee or fee_policy")

    def fee_for(output_list):
        if fee is not None:
            return fee
        return fee_policy(estimate_size(redeem_script, len(utxos), [o.locking_script for o in output_list]))

    available = sum(u.value for u in utxos)
    spent = sum(o.value for o in outputs)
    required_fee = fee_for(outputs)
    if required_fee < 0:
        raise ValueError("fee cannot be negative")
    if available < spent + required_fee:
        raise InsufficientFunds(available, spent + required_fee)

    if change_address is not None:
        change_script = _locking_script(change_address)
        with_change_fee = fee_for(outputs + [TxOutput(0, change_script)])
        change = available - spent - with_change_fee
        if change >= network.dust_limit:
            outputs.append(TxOutput(change, change_script))
        else:
            logger.debug("change of %d is dust, leaving it to the fee", change)

    inputs = [TxInput(u.outpoint, b'', sequence) for u in utxos]
    tx = Transaction(tuple(inputs), tuple(outputs), version, locktime)
    logger.debug("built unsigned %s: %d inputs, %d outputs, fee %d",
                 tx.txid, len(inputs), len(outputs), available - sum(o.value for o in outputs))
    return tx
