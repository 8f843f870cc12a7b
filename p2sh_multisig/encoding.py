import hashlib
import struct

from Crypto.Hash import RIPEMD160


# hashing helpers
def sha256(data):
    return hashlib.sha256(data).digest()


def hash256(data):
    """Double SHA-256, the digest used for txids and signature hashes."""
    return sha256(sha256(data))


def ripemd160(data):
    return RIPEMD160.new(data).digest()


def hash160(data):
    """RIPEMD-160 of SHA-256, used for script and pubkey hashes."""
    return ripemd160(sha256(data))


# serialization helpers
def ser_varint(i):
    if i < 0:
        raise ValueError("varint cannot encode negative value %d" % i)
    if i < 0xfd:
        return struct.pack("B", i)
    elif i <= 0xffff:
        return b'\xfd' + struct.pack("<H", i)
    elif i <= 0xffffffff:
        return b'\xfe' + struct.pack("<I", i)
    else:
        return b'\xff' + struct.pack("<Q", i)


def ser_bytes(data):
    """Length-prefixed byte string as it appears inside a transaction."""
    return ser_varint(len(data)) + data


def push_data(data):
    """Minimal script push of `data` (without small-integer opcodes)."""
    n = len(data)
    if n < 0x4c:
        return struct.pack("B", n) + data
    if n <= 0xff:
        return b'\x4c' + struct.pack("B", n) + data
    if n <= 0xffff:
        return b'\x4d' + struct.pack("<H", n) + data
    return b'\x4e' + struct.pack("<I", n) + data


def le32(i):
    return struct.pack("<I", i & 0xffffffff)


def le64(i):
    return struct.pack("<q", i)
