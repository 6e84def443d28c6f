"""Small numeric helpers and an RC4-based pseudo random byte generator."""

from __future__ import annotations

import re

__all__ = [
    "Rc4Random",
    "is_pow2",
    "to_pow2",
    "bytes_to_size",
    "size_to_bytes",
]

_UINT64_MAX = (1 << 64) - 1
_INT64_MAX = (1 << 63) - 1
_INT64_MIN = -(1 << 63)

_SEED_LEN = 256

_SIZE_SUFFIXES = ("KB", "MB", "GB", "TB", "PB", "EB")
# Values above this threshold (shifted per unit) move on to the next unit.
_SIZE_THRESHOLD = 0xFFF_CCCC_CCCC_CCCC

_UNIT_MULTIPLIERS = {
    "b": 1,
    "k": 1 << 10,
    "m": 1 << 20,
    "g": 1 << 30,
    "t": 1 << 40,
    "p": 1 << 50,
    "e": 1 << 60,
}

# Leading C-locale whitespace, optional sign, decimal digits.
_NUMBER = re.compile(r"[ \t\n\v\f\r]*([+-]?[0-9]+)")


class Rc4Random:
    """Deterministic pseudo random byte stream (RC4) seeded with 256 bytes.

    The seed serves both as the initial state and as the key, so it should
    come from a good entropy source such as ``os.urandom(256)``.
    """

    __slots__ = ("_i", "_j", "_state")

    def __init__(self, seed):
        seed = bytes(seed)
        if len(seed) != _SEED_LEN:
            raise ValueError(f"seed must be {_SEED_LEN} bytes, got {len(seed)}")

        state = bytearray(seed)
        j = 0
        for i, key_byte in enumerate(seed):
            j = (j + state[i] + key_byte) & 0xFF
            state[i], state[j] = state[j], state[i]

        self._state = state
        self._i = 0
        self._j = j

    def read(self, size):
        """Return the next ``size`` bytes of the stream (empty if size <= 0)."""
        if size <= 0:
            return b""

        state = self._state
        i = self._i
        j = self._j
        out = bytearray()

        for _ in range(size):
            i = (i + 1) & 0xFF
            t = state[i]
            j = (j + t) & 0xFF
            state[i] = state[j]
            state[j] = t
            out.append(state[(t + state[i]) & 0xFF])

        self._i = i
        self._j = j
        return bytes(out)


def is_pow2(num):
    """Return True if ``num`` is a power of two."""
    return num > 0 and (num & (num - 1)) == 0


def to_pow2(size):
    """Return the smallest power of two that is >= ``size``.

    ``size`` is treated as an unsigned 64-bit value; 0 maps to 1 and results
    that do not fit in 64 bits wrap around to 0.
    """
    if not 0 <= size <= _UINT64_MAX:
        raise ValueError(f"size out of 64-bit unsigned range: {size}")
    if size == 0:
        return 1
    return (1 << (size - 1).bit_length()) & _UINT64_MAX


def bytes_to_size(val):
    """Format a byte count in human readable form, e.g. 2048 -> '2.00 KB'."""
    if not 0 <= val <= _UINT64_MAX:
        raise ValueError(f"value out of 64-bit unsigned range: {val}")

    if val < 1024:
        return f"{val} B"

    unit = 0
    count = val
    for shift in (40, 30, 20, 10, 0):
        if val <= _SIZE_THRESHOLD >> shift:
            break
        unit += 1
        count >>= 10

    return f"{count / 1024:.2f} {_SIZE_SUFFIXES[unit]}"


def size_to_bytes(text):
    """Parse a size such as '10', '4k' or '2mb' into a byte count.

    Raises ValueError if the text is malformed or the result does not fit
    in a signed 64-bit integer.
    """
    match = _NUMBER.match(text)
    if match is None:
        raise ValueError(f"no number found in {text!r}")

    value = int(match.group(1))
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise ValueError(f"number out of range in {text!r}")

    suffix = text[match.end():]
    if not suffix:
        return value

    if len(suffix) > 2 or (len(suffix) == 2 and suffix[1].lower() != "b"):
        raise ValueError(f"invalid size suffix in {text!r}")

    multiplier = _UNIT_MULTIPLIERS.get(suffix[0].lower())
    if multiplier is None:
        raise ValueError(f"unknown size unit in {text!r}")

    if value > _INT64_MAX // multiplier:
        raise ValueError(f"size too large: {text!r}")

    return value * multiplier