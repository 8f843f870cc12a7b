"""Key material value types and the key-provider interface.

Private keys stay inside :class:`PrivateKey`; their bytes are never part of
a repr, a log record or an exception message.
"""

import abc
import functools

from ecdsa import SECP256k1, SigningKey, VerifyingKey
from ecdsa.errors import MalformedPointError

from p2sh_multisig.encoding import hash160
from p2sh_multisig.errors import InvalidPublicKey

COMPRESSED_KEY_SIZE = 33
UNCOMPRESSED_KEY_SIZE = 65


@functools.total_ordering
class PublicKey:
    """Serialized secp256k1 public key (33 byte compressed or 65 byte uncompressed)."""

    __slots__ = ("_data",)

    def __init__(self, data):
        data = bytes(data)
        if len(data) == COMPRESSED_KEY_SIZE:
            if data[0] not in (0x02, 0x03):
                raise InvalidPublicKey(data, "compressed key must start with 0x02 or 0x03")
        elif len(data) == UNCOMPRESSED_KEY_SIZE:
            if data[0] != 0x04:
                raise InvalidPublicKey(data, "uncompressed key must start with 0x04")
        else:
            raise InvalidPublicKey(data, "unexpected length %d" % len(data))
        try:
            VerifyingKey.from_string(data, curve=SECP256k1)
        except (MalformedPointError, ValueError) as e:
            raise InvalidPublicKey(data, "not a point on secp256k1 (%s)" % e) from e
        object.__setattr__(self, "_data", data)

    @classmethod
    def from_hex(cls, s):
        return cls(bytes.fromhex(s))

    def __setattr__(self, name, value):
        raise AttributeError("PublicKey is immutable")

    def __reduce__(self):
        # rebuild through __init__ so pickled keys are validated again
        return (PublicKey, (self._data,))

    def __bytes__(self):
        return self._data

    def __len__(self):
        return len(self._data)

    def __eq__(self, other):
        if isinstance(other, PublicKey):
            return self._data == other._data
        return NotImplemented

    def __lt__(self, other):
        if isinstance(other, PublicKey):
            return self._data < other._data
        return NotImplemented

    def __hash__(self):
        return hash(self._data)

    def __repr__(self):
        return "PublicKey(%s)" % self._data.hex()

    @property
    def compressed(self):
        return len(self._data) == COMPRESSED_KEY_SIZE

    def hex(self):
        return self._data.hex()

    def hash160(self):
        return hash160(self._data)

    def verifying_key(self):
        return VerifyingKey.from_string(self._data, curve=SECP256k1)


class PrivateKey:
    """A single secp256k1 secret. Only ever held by one signer."""

    def __init__(self, secret, compressed=True):
        if len(secret) != 32:
            raise ValueError("private key must be 32 bytes")
        try:
            self._signing_key = SigningKey.from_string(bytes(secret), curve=SECP256k1)
        except MalformedPointError as e:
            raise ValueError("private key out of range for secp256k1") from e
        self.compressed = compressed

    @classmethod
    def from_hex(cls, s, compressed=True):
        return cls(bytes.fromhex(s), compressed=compressed)

    @classmethod
    def generate(cls, compressed=True):
        return cls(SigningKey.generate(curve=SECP256k1).to_string(), compressed=compressed)

    @property
    def signing_key(self):
        return self._signing_key

    @property
    def public_key(self):
        encoding = "compressed" if self.compressed else "uncompressed"
        return PublicKey(self._signing_key.get_verifying_key().to_string(encoding))

    def __repr__(self):
        return "PrivateKey(<hidden>, public_key=%s)" % self.public_key.hex()


class KeyProvider(abc.ABC):
    """Source of key material supplied by the caller.

    The core asks for public keys when deriving scripts and for at most one
    private key per signer; it never stores what it receives.
    """

    @abc.abstractmethod
    def public_keys(self):
        """Return the participants' public keys."""

    @abc.abstractmethod
    def private_key_for(self, pubkey):
        """Return the PrivateKey matching `pubkey`, or None if not held."""


class InMemoryKeyStore(KeyProvider):
    def __init__(self, private_keys=(), public_keys=()):
        self._private = {k.public_key: k for k in private_keys}
        self._public = list(public_keys)
        for pub in self._private:
            if pub not in self._public:
                self._public.append(pub)

    def public_keys(self):
        return list(self._public)

    def private_key_for(self, pubkey):
        return self._private.get(pubkey)

    def __repr__(self):
        return "InMemoryKeyStore(%d public, %d private)" % (len(self._public), len(self._private))
