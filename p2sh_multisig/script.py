"""Opcodes, script tokenizing and the standard locking scripts."""

from p2sh_multisig.encoding import push_data
from p2sh_multisig.errors import MalformedScript

OP_0 = 0x00
OP_PUSHDATA1 = 0x4c
OP_PUSHDATA2 = 0x4d
OP_PUSHDATA4 = 0x4e
OP_1NEGATE = 0x4f
OP_1 = 0x51
OP_16 = 0x60
OP_NOP = 0x61
OP_VERIFY = 0x69
OP_RETURN = 0x6a
OP_DROP = 0x75
OP_DUP = 0x76
OP_EQUAL = 0x87
OP_EQUALVERIFY = 0x88
OP_HASH160 = 0xa9
OP_CODESEPARATOR = 0xab
OP_CHECKSIG = 0xac
OP_CHECKSIGVERIFY = 0xad
OP_CHECKMULTISIG = 0xae
OP_CHECKMULTISIGVERIFY = 0xaf

OPCODE_NAMES = {
    OP_0: "OP_0",
    OP_PUSHDATA1: "OP_PUSHDATA1",
    OP_PUSHDATA2: "OP_PUSHDATA2",
    OP_PUSHDATA4: "OP_PUSHDATA4",
    OP_1NEGATE: "OP_1NEGATE",
    OP_NOP: "OP_NOP",
    OP_VERIFY: "OP_VERIFY",
    OP_RETURN: "OP_RETURN",
    OP_DROP: "OP_DROP",
    OP_DUP: "OP_DUP",
    OP_EQUAL: "OP_EQUAL",
    OP_EQUALVERIFY: "OP_EQUALVERIFY",
    OP_HASH160: "OP_HASH160",
    OP_CODESEPARATOR: "OP_CODESEPARATOR",
    OP_CHECKSIG: "OP_CHECKSIG",
    OP_CHECKSIGVERIFY: "OP_CHECKSIGVERIFY",
    OP_CHECKMULTISIG: "OP_CHECKMULTISIG",
    OP_CHECKMULTISIGVERIFY: "OP_CHECKMULTISIGVERIFY",
}
OPCODE_NAMES.update({OP_1 + i: "OP_%d" % (i + 1) for i in range(16)})

# consensus limits
MAX_SCRIPT_ELEMENT_SIZE = 520
MAX_SCRIPT_SIZE = 10000
MAX_OPS_PER_SCRIPT = 201
MAX_STACK_SIZE = 1000
MAX_PUBKEYS_PER_MULTISIG = 20


def small_int_opcode(n):
    if n == 0:
        return OP_0
    if not 1 <= n <= 16:
        raise ValueError("no small integer opcode for %d" % n)
    return OP_1 + n - 1


def decode_small_int(opcode):
    if opcode == OP_0:
        return 0
    if OP_1 <= opcode <= OP_16:
        return opcode - OP_1 + 1
    raise ValueError("opcode 0x%02x is not a small integer" % opcode)


def is_small_int(opcode):
    return opcode == OP_0 or OP_1 <= opcode <= OP_16


def iter_script(script):
    """Yield ``(opcode, data, offset)`` for each element of `script`.

    `data` is the pushed bytes for push opcodes and None otherwise.
    """
    i = 0
    n = len(script)
    while i < n:
        start = i
        opcode = script[i]
        i += 1
        if opcode > OP_PUSHDATA4 or opcode == OP_0:
            yield opcode, (b'' if opcode == OP_0 else None), start
            continue
        if opcode < OP_PUSHDATA1:
            size = opcode
        else:
            width = {OP_PUSHDATA1: 1, OP_PUSHDATA2: 2, OP_PUSHDATA4: 4}[opcode]
            if i + width > n:
                raise MalformedScript(script, "truncated push length at offset %d" % start)
            size = int.from_bytes(script[i:i + width], "little")
            i += width
        if i + size > n:
            raise MalformedScript(script, "push of %d bytes overruns script at offset %d" % (size, start))
        yield opcode, script[i:i + size], start
        i += size


def is_push_only(script):
    for opcode, _, _ in iter_script(script):
        if opcode > OP_16:
            return False
    return True


def is_minimal_push(opcode, data):
    if len(data) == 0:
        return opcode == OP_0
    if len(data) == 1 and (1 <= data[0] <= 16 or data[0] == 0x81):
        # should have used OP_1..OP_16 or OP_1NEGATE
        return False
    if len(data) < OP_PUSHDATA1:
        return opcode == len(data)
    if len(data) <= 0xff:
        return opcode == OP_PUSHDATA1
    if len(data) <= 0xffff:
        return opcode == OP_PUSHDATA2
    return True


def find_and_delete(script, data):
    """Remove every push of `data` from `script` (legacy signature hashing)."""
    if not data:
        return script
    needle = push_data(data)
    out = bytearray()
    for opcode, pushed, offset in iter_script(script):
        end = _element_end(script, opcode, pushed, offset)
        if script[offset:end] != needle:
            out += script[offset:end]
    return bytes(out)


def _element_end(script, opcode, pushed, offset):
    if pushed is None or opcode == OP_0:
        return offset + 1
    header = 1
    if opcode == OP_PUSHDATA1:
        header = 2
    elif opcode == OP_PUSHDATA2:
        header = 3
    elif opcode == OP_PUSHDATA4:
        header = 5
    return offset + header + len(pushed)


def p2sh_locking_script(script_hash):
    # OP_HASH160 <20> script_hash OP_EQUAL
    if len(script_hash) != 20:
        raise ValueError("script hash must be 20 bytes")
    return bytes([OP_HASH160, 0x14]) + script_hash + bytes([OP_EQUAL])


def p2pkh_locking_script(pubkey_hash):
    # OP_DUP OP_HASH160 <20> pubkey_hash OP_EQUALVERIFY OP_CHECKSIG
    if len(pubkey_hash) != 20:
        raise ValueError("pubkey hash must be 20 bytes")
    return bytes([OP_DUP, OP_HASH160, 0x14]) + pubkey_hash + bytes([OP_EQUALVERIFY, OP_CHECKSIG])


def is_p2sh(script):
    return (len(script) == 23 and script[0] == OP_HASH160
            and script[1] == 0x14 and script[22] == OP_EQUAL)


def script_num(data):
    """Decode a minimally encoded script number (little endian, sign bit)."""
    if not data:
        return 0
    if len(data) > 4:
        raise ValueError("script number overflow")
    if (data[-1] & 0x7f) == 0 and (len(data) == 1 or (data[-2] & 0x80) == 0):
        raise ValueError("non-minimally encoded script number")
    value = int.from_bytes(data, "little")
    if data[-1] & 0x80:
        return -(value & ~(0x80 << (8 * (len(data) - 1))))
    return value


def script_num_bytes(n):
    if n == 0:
        return b''
    neg = n < 0
    n = abs(n)
    out = bytearray()
    while n:
        out.append(n & 0xff)
        n >>= 8
    if out[-1] & 0x80:
        out.append(0x80 if neg else 0x00)
    elif neg:
        out[-1] |= 0x80
    return bytes(out)


def disassemble(script):
    parts = []
    for opcode, data, _ in iter_script(script):
        if data is not None and opcode != OP_0:
            parts.append(data.hex())
        else:
            parts.append(OPCODE_NAMES.get(opcode, "OP_UNKNOWN_0x%02x" % opcode))
    return " ".join(parts)
