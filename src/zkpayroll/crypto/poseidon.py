"""Poseidon permutation over the BN254 scalar field.

Poseidon is an arithmetic-circuit friendly sponge: every operation is a field
addition, multiplication or an ``x^5`` S-box, so the exact same function can be
re-expressed as constraints inside the payment circuit. Commitments and
nullifiers are both Poseidon hashes so that the prover's native computation and
the circuit's recomputation agree bit for bit.

Parameters follow the Poseidon reference parameter script:

- S-box ``x^5``, 8 full rounds, partial rounds per width as used by circomlib
  (``t=3`` → 57, ``t=4`` → 56, ...)
- round constants and the Cauchy MDS matrix are drawn from the Grain LFSR
  seeded with ``(field=1, sbox=0, n=254, t, R_F, R_P)``

The state is laid out capacity-first (``[0, in_1, ..., in_k]``) and the first
element is squeezed as the digest.

Example:
    >>> from zkpayroll.crypto.poseidon import poseidon
    >>> digest = poseidon([1, 2])
    >>> assert 0 <= digest < CURVE_ORDER
"""

import functools
import logging
from collections import deque
from collections.abc import Iterator, Sequence

from zkpayroll.crypto.field import CURVE_ORDER

logger = logging.getLogger(__name__)

FULL_ROUNDS = 8

# Partial rounds indexed by state width t (inputs + 1)
PARTIAL_ROUNDS = {2: 56, 3: 57, 4: 56, 5: 60, 6: 60, 7: 63}

MAX_INPUTS = max(PARTIAL_ROUNDS) - 1

# Field elements packed from raw bytes stay strictly below 2^248 < r
BYTES_PER_ELEMENT = 31

_FIELD_BITS = CURVE_ORDER.bit_length()


# ---------------------------------------------------------------------------
# Parameter generation (Grain LFSR)
# ---------------------------------------------------------------------------


def _bits(value: int, width: int) -> list[int]:
    return [int(b) for b in bin(value)[2:].zfill(width)]


def _grain_stream(t: int, partial_rounds: int) -> Iterator[int]:
    """Yield the Grain LFSR output bits for the given instance."""
    state = deque(
        _bits(1, 2)  # prime field
        + _bits(0, 4)  # x^alpha S-box
        + _bits(_FIELD_BITS, 12)
        + _bits(t, 12)
        + _bits(FULL_ROUNDS, 10)
        + _bits(partial_rounds, 10)
        + [1] * 30
    )

    def step() -> int:
        bit = state[62] ^ state[51] ^ state[38] ^ state[23] ^ state[13] ^ state[0]
        state.popleft()
        state.append(bit)
        return bit

    for _ in range(160):
        step()

    while True:
        # Bits are consumed in pairs; the second is kept only if the first is 1
        first = step()
        while first == 0:
            step()
            first = step()
        yield step()


def _random_element(stream: Iterator[int]) -> int:
    value = 0
    for _ in range(_FIELD_BITS):
        value = (value << 1) | next(stream)
    return value


@functools.lru_cache(maxsize=None)
def parameters(t: int) -> tuple[tuple[int, ...], tuple[tuple[int, ...], ...]]:
    """Return ``(round_constants, mds)`` for state width *t*.

    Raises:
        ValueError: If *t* is not a supported width.
    """
    if t not in PARTIAL_ROUNDS:
        raise ValueError(f"Unsupported Poseidon width t={t}")
    partial_rounds = PARTIAL_ROUNDS[t]
    stream = _grain_stream(t, partial_rounds)

    constants: list[int] = []
    while len(constants) < (FULL_ROUNDS + partial_rounds) * t:
        candidate = _random_element(stream)
        if candidate < CURVE_ORDER:
            constants.append(candidate)

    while True:
        samples = [_random_element(stream) % CURVE_ORDER for _ in range(2 * t)]
        if len(set(samples)) != len(samples):
            continue
        xs, ys = samples[:t], samples[t:]
        if any((x + y) % CURVE_ORDER == 0 for x in xs for y in ys):
            continue
        mds = tuple(tuple(pow(x + y, -1, CURVE_ORDER) for y in ys) for x in xs)
        break

    logger.debug("Generated Poseidon parameters for t=%d (R_P=%d)", t, partial_rounds)
    return tuple(constants), mds


# ---------------------------------------------------------------------------
# Permutation and hashing
# ---------------------------------------------------------------------------


def permute(state: Sequence[int]) -> list[int]:
    """Apply the Poseidon permutation to a full state vector."""
    t = len(state)
    constants, mds = parameters(t)
    partial_rounds = PARTIAL_ROUNDS[t]
    half = FULL_ROUNDS // 2
    p = CURVE_ORDER

    s = [v % p for v in state]
    for r in range(FULL_ROUNDS + partial_rounds):
        s = [(v + constants[r * t + i]) % p for i, v in enumerate(s)]
        if r < half or r >= half + partial_rounds:
            s = [pow(v, 5, p) for v in s]
        else:
            s[0] = pow(s[0], 5, p)
        s = [sum(m * v for m, v in zip(row, s, strict=True)) % p for row in mds]
    return s


def poseidon(inputs: Sequence[int]) -> int:
    """Hash 1-6 field elements into a single field element.

    Raises:
        ValueError: If the number of inputs is unsupported or an input is not
            a reduced field element.
    """
    if not 1 <= len(inputs) <= MAX_INPUTS:
        raise ValueError(f"Poseidon takes 1..{MAX_INPUTS} inputs, got {len(inputs)}")
    for value in inputs:
        if not 0 <= value < CURVE_ORDER:
            raise ValueError("Poseidon inputs must be reduced field elements")
    return permute([0, *inputs])[0]


def hash_bytes(data: bytes, *, domain: int = 0) -> int:
    """Hash an arbitrary byte string by chaining Poseidon over 31-byte limbs.

    The byte length is absorbed first so inputs that differ only by trailing
    zero bytes do not collide. *domain* separates independent uses.
    """
    acc = poseidon([domain, len(data)])
    for offset in range(0, len(data), BYTES_PER_ELEMENT):
        limb = int.from_bytes(data[offset : offset + BYTES_PER_ELEMENT], "big")
        acc = poseidon([acc, limb])
    return acc
