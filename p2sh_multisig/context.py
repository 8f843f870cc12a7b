"""Per-input signing context shared by every signer of that input."""

from dataclasses import dataclass, field
from typing import Dict, Optional

from p2sh_multisig.network import NetworkParams
from p2sh_multisig.redeem_script import RedeemScript
from p2sh_multisig.sighash import SigHashScheme, signature_hash
from p2sh_multisig.transaction import Transaction


@dataclass(frozen=True)
class SigningContext:
    """Everything a signature for one input commits to.

    Digests are memoized per flag, so every signer of this input works from
    the same bytes and each digest is computed once.
    """
    transaction: Transaction
    input_index: int
    redeem_script: RedeemScript
    value: int
    network: NetworkParams
    scheme: Optional[SigHashScheme] = None
    _digests: Dict[int, bytes] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self):
        if self.scheme is None:
            object.__setattr__(self, "scheme", self.network.sighash_scheme)
        if not 0 <= self.input_index < len(self.transaction.inputs):
            raise IndexError("input %d out of range" % self.input_index)
        if self.transaction.inputs[self.input_index].script_sig:
            raise ValueError("input %d is already signed" % self.input_index)

    @property
    def fork_id(self):
        return self.network.fork_id

    def digest(self, flag=None):
        if flag is None:
            flag = self.network.default_sighash_flag
        if flag not in self._digests:
            self._digests[flag] = signature_hash(
                self.transaction, self.input_index, self.redeem_script.serialize(),
                self.value, flag, self.scheme, self.fork_id)
        return self._digests[flag]
