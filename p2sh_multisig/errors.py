"""Typed failures raised by the multisig core.

Every error carries a ``details`` dict so a caller can tell which input,
which signer and which rule failed, and retry accordingly.
"""


class MultisigError(Exception):
    def __init__(self, message, **details):
        super().__init__(message)
        self.details = details


# builder stage
class ValidationError(MultisigError):
    pass


class InvalidThreshold(ValidationError):
    def __init__(self, threshold, key_count):
        super().__init__(
            "threshold %d must be between 1 and %d" % (threshold, key_count),
            threshold=threshold, key_count=key_count)


class DuplicateKey(ValidationError):
    def __init__(self, pubkey):
        super().__init__("public key %s appears more than once" % pubkey.hex(), pubkey=pubkey)


class InvalidPublicKey(ValidationError):
    def __init__(self, pubkey, reason):
        super().__init__("invalid public key %s: %s" % (pubkey.hex(), reason), pubkey=pubkey, reason=reason)


class ScriptTooLarge(ValidationError):
    def __init__(self, size, limit):
        super().__init__("redeem script is %d bytes, limit is %d" % (size, limit), size=size, limit=limit)


class MalformedScript(ValidationError):
    def __init__(self, script, reason):
        super().__init__("malformed script: %s" % reason, script=script, reason=reason)


class InvalidSigHashFlag(ValidationError):
    def __init__(self, flag, reason, input_index=None):
        super().__init__("sighash flag 0x%02x rejected: %s" % (flag, reason),
                         flag=flag, reason=reason, input_index=input_index)


class UnexpectedLockingScript(ValidationError):
    def __init__(self, outpoint, locking_script, expected):
        super().__init__(
            "output %s is locked by %s, expected %s" % (outpoint, locking_script.hex(), expected.hex()),
            outpoint=outpoint, locking_script=locking_script, expected=expected)


# funding
class FundingError(MultisigError):
    pass


class NoInputsProvided(FundingError):
    def __init__(self):
        super().__init__("no unspent outputs supplied")


class InsufficientFunds(FundingError):
    def __init__(self, available, required):
        super().__init__("inputs total %d, outputs plus fee need %d" % (available, required),
                         available=available, required=required)


class DustOutput(FundingError):
    def __init__(self, output_index, value, limit):
        super().__init__("output %d value %d is below the dust limit %d" % (output_index, value, limit),
                         output_index=output_index, value=value, limit=limit)


# signing
class SignatureError(MultisigError):
    pass


class KeyNotInScript(SignatureError):
    def __init__(self, pubkey):
        super().__init__("public key %s is not part of the redeem script" % pubkey.hex(), pubkey=pubkey)


class MalformedSignature(SignatureError):
    def __init__(self, pubkey, reason, input_index=None):
        super().__init__("signature from %s is malformed: %s" % (pubkey.hex(), reason),
                         pubkey=pubkey, reason=reason, input_index=input_index)


class SignatureMismatch(SignatureError):
    def __init__(self, pubkey, input_index=None):
        super().__init__("signature does not verify against %s for input %s" % (pubkey.hex(), input_index),
                         pubkey=pubkey, input_index=input_index)


# assembly
class AssemblyError(MultisigError):
    pass


class InsufficientSignatures(AssemblyError):
    def __init__(self, required, valid, input_index=None, rejected=()):
        super().__init__(
            "input %s: %d valid signatures, %d required" % (input_index, valid, required),
            required=required, valid=valid, input_index=input_index, rejected=tuple(rejected))


class DuplicateSigner(AssemblyError):
    def __init__(self, pubkey, input_index=None):
        super().__init__("input %s: %s signed more than once" % (input_index, pubkey.hex()),
                         pubkey=pubkey, input_index=input_index)


# verification and submission
class VerificationError(MultisigError):
    def __init__(self, result):
        message = "input %d failed verification: %s" % (result.input_index, result.reason.value)
        if result.detail:
            message += " (%s)" % result.detail
        super().__init__(message, input_index=result.input_index, reason=result.reason,
                         detail=result.detail)
        self.result = result


class SubmissionError(MultisigError):
    def __init__(self, txid, reason):
        super().__init__("transaction %s rejected: %s" % (txid, reason), txid=txid, reason=reason)
