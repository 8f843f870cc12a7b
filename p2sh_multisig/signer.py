"""Per-participant signing.

A Signer holds exactly one private key. Nonces come from RFC 6979 (derived
from the key and the digest), and S is normalized to the lower half of the
curve order so the signature is not malleable.
"""

import hashlib
import logging
from dataclasses import dataclass
from typing import Optional

from ecdsa import BadSignatureError, SECP256k1
from ecdsa.util import sigdecode_der, sigencode_der

from p2sh_multisig.errors import (InvalidPublicKey, KeyNotInScript, MalformedSignature,
                                  SignatureMismatch)
from p2sh_multisig.keys import PublicKey
from p2sh_multisig.sighash import flag_name

logger = logging.getLogger(__name__)

order = SECP256k1.order


def normalize_sig(der_sig):
    r, s = sigdecode_der(der_sig, order)
    if s > order // 2:
        s = order - s
    return sigencode_der(r, s, order)


def is_low_s(der_sig):
    _, s = sigdecode_der(der_sig, order)
    return s <= order // 2


def is_strict_der(sig):
    """BIP66 strict DER check for a signature *without* the flag byte."""
    # 0x30 [total-len] 0x02 [R-len] [R] 0x02 [S-len] [S]
    if len(sig) < 8 or len(sig) > 72:
        return False
    if sig[0] != 0x30 or sig[1] != len(sig) - 2:
        return False
    len_r = sig[3]
    if 5 + len_r >= len(sig):
        return False
    len_s = sig[5 + len_r]
    if len_r + len_s + 6 != len(sig):
        return False
    if sig[2] != 0x02 or len_r == 0 or sig[4] & 0x80:
        return False
    if len_r > 1 and sig[4] == 0x00 and not sig[5] & 0x80:
        return False
    if sig[len_r + 4] != 0x02 or len_s == 0 or sig[len_r + 6] & 0x80:
        return False
    if len_s > 1 and sig[len_r + 6] == 0x00 and not sig[len_r + 7] & 0x80:
        return False
    return True


def verify_signature(pubkey, der_sig, digest):
    """True if `der_sig` is a strict, low-S signature of `digest` by `pubkey`."""
    if not is_strict_der(der_sig) or not is_low_s(der_sig):
        return False
    try:
        return PublicKey(pubkey).verifying_key().verify_digest(der_sig, digest, sigdecode=sigdecode_der)
    except (BadSignatureError, InvalidPublicKey):
        return False


@dataclass(frozen=True)
class PartialSignature:
    pubkey: PublicKey
    signature: bytes
    flag: int
    input_index: Optional[int] = None

    @classmethod
    def from_script_element(cls, pubkey, element, input_index=None):
        """Split a pushed ``DER || flag`` element."""
        if len(element) < 2:
            raise MalformedSignature(bytes(pubkey), "empty signature element", input_index)
        return cls(pubkey, bytes(element[:-1]), element[-1], input_index)

    def script_element(self):
        return self.signature + bytes([self.flag])

    def check(self, digest):
        """Raise MalformedSignature or SignatureMismatch unless valid for `digest`."""
        if not is_strict_der(self.signature):
            raise MalformedSignature(bytes(self.pubkey), "not strict DER", self.input_index)
        if not is_low_s(self.signature):
            raise MalformedSignature(bytes(self.pubkey), "high S value", self.input_index)
        if not verify_signature(self.pubkey, self.signature, digest):
            raise SignatureMismatch(bytes(self.pubkey), self.input_index)


class Signer:
    def __init__(self, private_key, redeem_script):
        pubkey = private_key.public_key
        if redeem_script.index_of(pubkey) is None:
            raise KeyNotInScript(bytes(pubkey))
        self._private_key = private_key
        self.redeem_script = redeem_script
        self.pubkey = pubkey

    @classmethod
    def from_provider(cls, provider, pubkey, redeem_script):
        private_key = provider.private_key_for(pubkey)
        if private_key is None:
            raise KeyNotInScript(bytes(pubkey))
        return cls(private_key, redeem_script)

    def sign(self, digest, flag, input_index=None):
        if len(digest) != 32:
            raise ValueError("digest must be 32 bytes")
        der_sig = self._private_key.signing_key.sign_digest_deterministic(
            digest, hashfunc=hashlib.sha256, sigencode=sigencode_der)
        der_sig = normalize_sig(der_sig)
        logger.debug("signer %s signed input %s with %s", self.pubkey.hex(), input_index, flag_name(flag))
        return PartialSignature(self.pubkey, der_sig, flag, input_index)

    def sign_input(self, context, flag=None):
        """Sign the digest described by a SigningContext."""
        if context.redeem_script.index_of(self.pubkey) is None:
            raise KeyNotInScript(bytes(self.pubkey))
        if flag is None:
            flag = context.network.default_sighash_flag
        return self.sign(context.digest(flag), flag, context.input_index)

    def __repr__(self):
        return "Signer(%s)" % self.pubkey.hex()
