"""Local script evaluation before submission.

Runs the unlocking script, the P2SH locking script and then the revealed
redeem script through a small stack interpreter using the same rules a
validating node applies to a P2SH multisig spend. Failures are returned as
a VerificationResult carrying a specific reason; nothing here raises for a
script that merely fails.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Optional

from p2sh_multisig.encoding import hash160
from p2sh_multisig.errors import InvalidSigHashFlag, MalformedScript, VerificationError
from p2sh_multisig.keys import COMPRESSED_KEY_SIZE, UNCOMPRESSED_KEY_SIZE
from p2sh_multisig.script import (MAX_OPS_PER_SCRIPT, MAX_PUBKEYS_PER_MULTISIG,
                                  MAX_SCRIPT_ELEMENT_SIZE, MAX_SCRIPT_SIZE, MAX_STACK_SIZE,
                                  OP_1, OP_16, OP_1NEGATE, OP_CHECKMULTISIG,
                                  OP_CHECKMULTISIGVERIFY, OP_CHECKSIG, OP_CHECKSIGVERIFY, OP_DROP,
                                  OP_DUP, OP_EQUAL, OP_EQUALVERIFY, OP_HASH160, OP_NOP, OP_RETURN,
                                  OP_VERIFY, OPCODE_NAMES, find_and_delete, is_minimal_push,
                                  is_p2sh, is_push_only, iter_script, script_num, script_num_bytes)
from p2sh_multisig.sighash import (BASE_TYPE_MASK, SIGHASH_ANYONECANPAY, SIGHASH_FORKID,
                                   SigHashScheme, signature_hash)
from p2sh_multisig.signer import is_low_s, is_strict_der, verify_signature

logger = logging.getLogger(__name__)


class Reason(enum.Enum):
    INPUT_INDEX = "input-index"
    BAD_SCRIPT = "malformed-script"
    SCRIPT_SIZE = "script-size"
    PUSH_SIZE = "push-size"
    OP_COUNT = "op-count"
    STACK_SIZE = "stack-size"
    MINIMALDATA = "minimaldata"
    UNSUPPORTED_OPCODE = "unsupported-opcode"
    OP_RETURN = "op-return"
    INVALID_STACK_OPERATION = "invalid-stack-operation"
    VERIFY = "verify"
    EQUALVERIFY = "equalverify"
    CHECKSIGVERIFY = "checksigverify"
    CHECKMULTISIGVERIFY = "checkmultisigverify"
    PUBKEY_COUNT = "pubkey-count"
    SIG_COUNT = "sig-count"
    PUBKEY_TYPE = "pubkey-type"
    SIG_DER = "sig-der"
    SIG_HIGH_S = "sig-high-s"
    SIG_HASHTYPE = "sig-hashtype"
    SIG_NULLDUMMY = "sig-nulldummy"
    SIG_PUSHONLY = "sig-pushonly"
    SCRIPT_HASH_MISMATCH = "script-hash-mismatch"
    EVAL_FALSE = "eval-false"
    CLEANSTACK = "cleanstack"


@dataclass(frozen=True)
class VerificationResult:
    input_index: int
    reason: Optional[Reason] = None
    detail: str = ""

    @property
    def ok(self):
        return self.reason is None

    def __bool__(self):
        return self.ok

    def raise_for_failure(self):
        if not self.ok:
            raise VerificationError(self)
        return self


class ScriptFailure(Exception):
    def __init__(self, reason, detail=""):
        super().__init__(reason.value)
        self.reason = reason
        self.detail = detail


def cast_to_bool(data):
    for i, byte in enumerate(data):
        if byte != 0:
            # negative zero is false
            return not (i == len(data) - 1 and byte == 0x80)
    return False


TRUE = b'\x01'
FALSE = b''


class Interpreter:
    """Executes scripts for one input of a transaction."""

    def __init__(self, tx, input_index, value, network, scheme=None):
        self.tx = tx
        self.input_index = input_index
        self.value = value
        self.network = network
        self.scheme = scheme or network.sighash_scheme
        self.op_count = 0

    def run(self, script, stack):
        if len(script) > MAX_SCRIPT_SIZE:
            raise ScriptFailure(Reason.SCRIPT_SIZE, "%d bytes" % len(script))
        self.op_count = 0
        try:
            elements = list(iter_script(script))
        except MalformedScript as e:
            raise ScriptFailure(Reason.BAD_SCRIPT, e.details["reason"]) from e
        for opcode, data, offset in elements:
            if data is not None:
                if len(data) > MAX_SCRIPT_ELEMENT_SIZE:
                    raise ScriptFailure(Reason.PUSH_SIZE, "%d byte push at %d" % (len(data), offset))
                if not is_minimal_push(opcode, data):
                    raise ScriptFailure(Reason.MINIMALDATA, "non-minimal push at %d" % offset)
                stack.append(data)
            else:
                if opcode > OP_16:
                    self._count_ops(1)
                self._step(opcode, script, stack)
            if len(stack) > MAX_STACK_SIZE:
                raise ScriptFailure(Reason.STACK_SIZE)
        return stack

    def _count_ops(self, n):
        self.op_count += n
        if self.op_count > MAX_OPS_PER_SCRIPT:
            raise ScriptFailure(Reason.OP_COUNT)

    def _step(self, opcode, script, stack):
        if opcode == OP_1NEGATE:
            stack.append(script_num_bytes(-1))
        elif OP_1 <= opcode <= OP_16:
            stack.append(script_num_bytes(opcode - OP_1 + 1))
        elif opcode == OP_NOP:
            pass
        elif opcode == OP_VERIFY:
            if not cast_to_bool(_pop(stack)):
                raise ScriptFailure(Reason.VERIFY)
        elif opcode == OP_RETURN:
            raise ScriptFailure(Reason.OP_RETURN)
        elif opcode == OP_DROP:
            _pop(stack)
        elif opcode == OP_DUP:
            _need(stack, 1)
            stack.append(stack[-1])
        elif opcode in (OP_EQUAL, OP_EQUALVERIFY):
            b, a = _pop(stack), _pop(stack)
            if opcode == OP_EQUALVERIFY:
                if a != b:
                    raise ScriptFailure(Reason.EQUALVERIFY)
            else:
                stack.append(TRUE if a == b else FALSE)
        elif opcode == OP_HASH160:
            stack.append(hash160(_pop(stack)))
        elif opcode in (OP_CHECKSIG, OP_CHECKSIGVERIFY):
            pubkey, sig = _pop(stack), _pop(stack)
            script_code = script
            if self.scheme is SigHashScheme.LEGACY:
                script_code = find_and_delete(script_code, sig)
            success = self.check_sig(sig, pubkey, script_code)
            if opcode == OP_CHECKSIGVERIFY:
                if not success:
                    raise ScriptFailure(Reason.CHECKSIGVERIFY)
            else:
                stack.append(TRUE if success else FALSE)
        elif opcode in (OP_CHECKMULTISIG, OP_CHECKMULTISIGVERIFY):
            success = self.check_multisig(script, stack)
            if opcode == OP_CHECKMULTISIGVERIFY:
                if not success:
                    raise ScriptFailure(Reason.CHECKMULTISIGVERIFY)
            else:
                stack.append(TRUE if success else FALSE)
        else:
            raise ScriptFailure(Reason.UNSUPPORTED_OPCODE,
                                OPCODE_NAMES.get(opcode, "0x%02x" % opcode))

    def check_multisig(self, script, stack):
        i = 1
        _need(stack, i)
        n_keys = _num(stack[-i])
        if not 0 <= n_keys <= MAX_PUBKEYS_PER_MULTISIG:
            raise ScriptFailure(Reason.PUBKEY_COUNT, str(n_keys))
        self._count_ops(n_keys)
        i += 1
        ikey = i
        i += n_keys
        _need(stack, i)
        n_sigs = _num(stack[-i])
        if not 0 <= n_sigs <= n_keys:
            raise ScriptFailure(Reason.SIG_COUNT, "%d of %d" % (n_sigs, n_keys))
        i += 1
        isig = i
        i += n_sigs
        # the extra element consumed below is the dummy
        _need(stack, i)

        script_code = script
        if self.scheme is SigHashScheme.LEGACY:
            for k in range(n_sigs):
                script_code = find_and_delete(script_code, stack[-isig - k])

        success = True
        while success and n_sigs > 0:
            sig = stack[-isig]
            pubkey = stack[-ikey]
            if self.check_sig(sig, pubkey, script_code):
                isig += 1
                n_sigs -= 1
            ikey += 1
            n_keys -= 1
            # more signatures left than keys to match them against
            if n_sigs > n_keys:
                success = False

        while i > 1:
            stack.pop()
            i -= 1
        dummy = _pop(stack)
        if dummy:
            raise ScriptFailure(Reason.SIG_NULLDUMMY)
        return success

    def check_sig(self, sig, pubkey, script_code):
        if not sig:
            return False
        der_sig, flag = sig[:-1], sig[-1]
        if not is_strict_der(der_sig):
            raise ScriptFailure(Reason.SIG_DER)
        if not is_low_s(der_sig):
            raise ScriptFailure(Reason.SIG_HIGH_S)
        self._check_hashtype(flag)
        if not _is_pubkey_encoding(pubkey):
            raise ScriptFailure(Reason.PUBKEY_TYPE, pubkey.hex())
        try:
            digest = signature_hash(self.tx, self.input_index, script_code, self.value, flag,
                                    self.scheme, self.network.fork_id)
        except InvalidSigHashFlag as e:
            raise ScriptFailure(Reason.SIG_HASHTYPE, e.details["reason"]) from e
        return verify_signature(pubkey, der_sig, digest)

    def _check_hashtype(self, flag):
        if flag & BASE_TYPE_MASK not in (1, 2, 3):
            raise ScriptFailure(Reason.SIG_HASHTYPE, "0x%02x" % flag)
        if flag & ~(BASE_TYPE_MASK | SIGHASH_FORKID | SIGHASH_ANYONECANPAY):
            raise ScriptFailure(Reason.SIG_HASHTYPE, "0x%02x" % flag)
        uses_fork_id = self.network.fork_id is not None
        if bool(flag & SIGHASH_FORKID) != uses_fork_id:
            raise ScriptFailure(Reason.SIG_HASHTYPE, "FORKID bit mismatch in 0x%02x" % flag)


def _need(stack, n):
    if len(stack) < n:
        raise ScriptFailure(Reason.INVALID_STACK_OPERATION)


def _pop(stack):
    _need(stack, 1)
    return stack.pop()


def _num(data):
    try:
        return script_num(data)
    except ValueError as e:
        raise ScriptFailure(Reason.INVALID_STACK_OPERATION, str(e)) from e


def _is_pubkey_encoding(pubkey):
    if len(pubkey) == COMPRESSED_KEY_SIZE:
        return pubkey[0] in (0x02, 0x03)
    if len(pubkey) == UNCOMPRESSED_KEY_SIZE:
        return pubkey[0] == 0x04
    return False


def verify_input(tx, input_index, locking_script, value, network, scheme=None):
    """Evaluate input `input_index` against the output it spends."""
    if not 0 <= input_index < len(tx.inputs):
        return VerificationResult(input_index, Reason.INPUT_INDEX, "transaction has %d inputs" % len(tx.inputs))
    script_sig = tx.inputs[input_index].script_sig
    interpreter = Interpreter(tx, input_index, value, network, scheme)
    try:
        result = _evaluate(interpreter, script_sig, bytes(locking_script))
    except ScriptFailure as e:
        result = VerificationResult(input_index, e.reason, e.detail)
    if result.ok:
        logger.debug("input %d of %s verified", input_index, tx.txid)
    else:
        logger.warning("input %d of %s rejected: %s %s", input_index, tx.txid,
                       result.reason.value, result.detail)
    return result


def _evaluate(interpreter, script_sig, locking_script):
    index = interpreter.input_index
    try:
        push_only = is_push_only(script_sig)
    except MalformedScript as e:
        return VerificationResult(index, Reason.BAD_SCRIPT, e.details["reason"])
    if not push_only:
        return VerificationResult(index, Reason.SIG_PUSHONLY)

    stack = interpreter.run(script_sig, [])
    p2sh_stack = list(stack)
    interpreter.run(locking_script, stack)
    if not stack or not cast_to_bool(stack[-1]):
        if is_p2sh(locking_script):
            return VerificationResult(index, Reason.SCRIPT_HASH_MISMATCH,
                                      "revealed script does not hash to %s" % locking_script[2:22].hex())
        return VerificationResult(index, Reason.EVAL_FALSE)

    if is_p2sh(locking_script):
        stack = p2sh_stack
        redeem_script = _pop(stack)
        interpreter.run(redeem_script, stack)
        if not stack or not cast_to_bool(stack[-1]):
            return VerificationResult(index, Reason.EVAL_FALSE, "redeem script evaluated to false")

    if len(stack) != 1:
        return VerificationResult(index, Reason.CLEANSTACK, "%d items left on the stack" % len(stack))
    return VerificationResult(index)


def verify_transaction(tx, spent_outputs, network, scheme=None):
    """Verify every input; `spent_outputs` lines up with ``tx.inputs``."""
    spent_outputs = list(spent_outputs)
    if len(spent_outputs) != len(tx.inputs):
        raise ValueError("need one spent output per input (%d inputs, %d outputs)"
                         % (len(tx.inputs), len(spent_outputs)))
    return [verify_input(tx, n, utxo.locking_script, utxo.value, network, scheme)
            for n, utxo in enumerate(spent_outputs)]


def first_failure(results):
    for result in results:
        if not result.ok:
            return result
    return None


def check_address_commitment(redeem_script, address):
    """True if `address` commits to exactly the bytes of `redeem_script`."""
    return hash160(bytes(redeem_script)) == address.hash
