"""Groth16 over BN254 for small rank-1 constraint systems.

This is a complete but deliberately small implementation: a QAP is built by
Lagrange interpolation over the evaluation points ``1..n`` (one per
constraint), the setup evaluates every wire polynomial at the secret point
``tau`` and publishes the resulting group elements, and the verifier checks

    e(A, B) == e(alpha, beta) * e(vk_x, gamma) * e(C, delta)

with ``vk_x = sum(public_i * IC_i)``. Wire 0 is the constant ``1`` and wires
``0..num_public-1`` are the public inputs.

All scalar arithmetic is done on plain ints modulo the curve order; group
operations use ``py_ecc.optimized_bn128`` (projective coordinates).

Example:
    >>> system = R1CS(num_wires=4, num_public=2)
    >>> system.add_constraint({2: 1}, {3: 1}, {1: 1})  # x * y = out
    >>> system.add_constraint({2: 1}, {0: 1}, {2: 1})  # x * 1 = x
    >>> pk, vk = setup(system, seed=b"dev")
    >>> proof = prove(system, pk, [1, 12, 3, 4])
    >>> assert verify(vk, [12], proof)
"""

import hashlib
import logging
import secrets
from dataclasses import dataclass, field
from functools import reduce

from py_ecc import optimized_bn128 as bn128

from zkpayroll.crypto.field import CURVE_ORDER, G1Point, G2Point

logger = logging.getLogger(__name__)

R = CURVE_ORDER

# Sparse linear combination: wire index -> coefficient
LinearCombination = dict[int, int]


@dataclass
class R1CS:
    """Constraint system ``<A_j, w> * <B_j, w> = <C_j, w>`` for every j."""

    num_wires: int
    num_public: int
    constraints: list[tuple[LinearCombination, LinearCombination, LinearCombination]] = field(
        default_factory=list
    )

    def add_constraint(
        self, a: LinearCombination, b: LinearCombination, c: LinearCombination
    ) -> None:
        for lc in (a, b, c):
            for wire in lc:
                if not 0 <= wire < self.num_wires:
                    raise ValueError(f"Wire {wire} out of range")
        self.constraints.append((a, b, c))

    def is_satisfied(self, witness: list[int]) -> bool:
        """Check a full witness (including the leading ``1``) against every constraint."""
        if len(witness) != self.num_wires or witness[0] != 1:
            return False
        for a, b, c in self.constraints:
            if _dot(a, witness) * _dot(b, witness) % R != _dot(c, witness):
                return False
        return True


@dataclass(frozen=True)
class ProvingKey:
    alpha_g1: G1Point
    beta_g1: G1Point
    delta_g1: G1Point
    beta_g2: G2Point
    delta_g2: G2Point
    a_query: list[G1Point]
    b_g1_query: list[G1Point]
    b_g2_query: list[G2Point]
    l_query: list[G1Point]  # private wires only, public slots are infinity
    h_query: list[G1Point]


@dataclass(frozen=True)
class VerifyingKey:
    alpha_g1: G1Point
    beta_g2: G2Point
    gamma_g2: G2Point
    delta_g2: G2Point
    ic: list[G1Point]


@dataclass(frozen=True)
class Proof:
    a: G1Point
    b: G2Point
    c: G1Point


# ---------------------------------------------------------------------------
# Polynomial helpers (coefficients low degree first)
# ---------------------------------------------------------------------------


def _dot(lc: LinearCombination, witness: list[int]) -> int:
    return sum(coeff * witness[wire] for wire, coeff in lc.items()) % R


def _poly_mul(a: list[int], b: list[int]) -> list[int]:
    out = [0] * (len(a) + len(b) - 1)
    for i, x in enumerate(a):
        if x:
            for j, y in enumerate(b):
                out[i + j] = (out[i + j] + x * y) % R
    return out


def _poly_sub(a: list[int], b: list[int]) -> list[int]:
    out = [0] * max(len(a), len(b))
    for i, x in enumerate(a):
        out[i] = x
    for i, y in enumerate(b):
        out[i] = (out[i] - y) % R
    return out


def _poly_divmod(a: list[int], b: list[int]) -> tuple[list[int], list[int]]:
    remainder = list(a)
    inv_lead = pow(b[-1], -1, R)
    quotient = [0] * max(len(a) - len(b) + 1, 1)
    while len(remainder) >= len(b):
        factor = remainder[-1] * inv_lead % R
        pos = len(remainder) - len(b)
        quotient[pos] = factor
        for i, y in enumerate(b):
            remainder[pos + i] = (remainder[pos + i] - factor * y) % R
        remainder.pop()
    return quotient, remainder


def _vanishing(n: int) -> list[int]:
    """``Z(x) = (x - 1)(x - 2)...(x - n)``."""
    return reduce(_poly_mul, ([(-j) % R, 1] for j in range(1, n + 1)), [1])


def _interpolate(values: list[int]) -> list[int]:
    """Coefficients of the polynomial taking ``values[j]`` at ``x = j + 1``."""
    n = len(values)
    result = [0] * n
    for j, y in enumerate(values):
        if not y:
            continue
        xj = j + 1
        numerator = [1]
        denominator = 1
        for k in range(1, n + 1):
            if k == xj:
                continue
            numerator = _poly_mul(numerator, [(-k) % R, 1])
            denominator = denominator * (xj - k) % R
        scale = y * pow(denominator, -1, R) % R
        for i, c in enumerate(numerator):
            result[i] = (result[i] + c * scale) % R
    return result


def _lagrange_at(n: int, x: int) -> list[int]:
    """Values of the n Lagrange basis polynomials over ``1..n`` at *x*."""
    basis = []
    for j in range(1, n + 1):
        num, den = 1, 1
        for k in range(1, n + 1):
            if k != j:
                num = num * (x - k) % R
                den = den * (j - k) % R
        basis.append(num * pow(den, -1, R) % R)
    return basis


# ---------------------------------------------------------------------------
# Setup / prove / verify
# ---------------------------------------------------------------------------


def _toxic_scalars(seed: bytes | None, n: int) -> dict[str, int]:
    def draw(label: str, counter: int) -> int:
        if seed is None:
            return secrets.randbelow(R - 1) + 1
        digest = hashlib.sha256(seed + label.encode() + counter.to_bytes(4, "big")).digest()
        return int.from_bytes(digest, "big") % (R - 1) + 1

    scalars = {}
    for label in ("alpha", "beta", "gamma", "delta", "tau"):
        counter = 0
        value = draw(label, counter)
        # tau must not be an evaluation point or Z(tau) vanishes
        while label == "tau" and 1 <= value <= n:
            counter += 1
            value = draw(label, counter)
        scalars[label] = value
    return scalars


def setup(system: R1CS, *, seed: bytes | None = None) -> tuple[ProvingKey, VerifyingKey]:
    """Run a single-party trusted setup for *system*.

    With a *seed* the toxic waste is derived deterministically, which makes the
    keys reproducible and therefore insecure outside development.
    """
    n = len(system.constraints)
    if n == 0:
        raise ValueError("Constraint system has no constraints")
    t = _toxic_scalars(seed, n)
    alpha, beta, gamma, delta, tau = (t[k] for k in ("alpha", "beta", "gamma", "delta", "tau"))

    basis = _lagrange_at(n, tau)
    a_tau = [0] * system.num_wires
    b_tau = [0] * system.num_wires
    c_tau = [0] * system.num_wires
    for lj, (a, b, c) in zip(basis, system.constraints, strict=True):
        for target, lc in ((a_tau, a), (b_tau, b), (c_tau, c)):
            for wire, coeff in lc.items():
                target[wire] = (target[wire] + coeff * lj) % R

    z_tau = reduce(lambda acc, j: acc * (tau - j) % R, range(1, n + 1), 1)
    gamma_inv = pow(gamma, -1, R)
    delta_inv = pow(delta, -1, R)

    g1, g2 = bn128.G1, bn128.G2
    mul = bn128.multiply

    def combined(i: int) -> int:
        return (beta * a_tau[i] + alpha * b_tau[i] + c_tau[i]) % R

    ic = [mul(g1, combined(i) * gamma_inv % R) for i in range(system.num_public)]
    l_query = [
        bn128.Z1 if i < system.num_public else mul(g1, combined(i) * delta_inv % R)
        for i in range(system.num_wires)
    ]
    h_query = [mul(g1, pow(tau, k, R) * z_tau * delta_inv % R) for k in range(n - 1)]

    pk = ProvingKey(
        alpha_g1=mul(g1, alpha),
        beta_g1=mul(g1, beta),
        delta_g1=mul(g1, delta),
        beta_g2=mul(g2, beta),
        delta_g2=mul(g2, delta),
        a_query=[mul(g1, v) for v in a_tau],
        b_g1_query=[mul(g1, v) for v in b_tau],
        b_g2_query=[mul(g2, v) for v in b_tau],
        l_query=l_query,
        h_query=h_query,
    )
    vk = VerifyingKey(
        alpha_g1=pk.alpha_g1,
        beta_g2=pk.beta_g2,
        gamma_g2=mul(g2, gamma),
        delta_g2=pk.delta_g2,
        ic=ic,
    )
    logger.debug(
        "Groth16 setup: %d constraints, %d wires, %d public",
        n,
        system.num_wires,
        system.num_public,
    )
    return pk, vk


def _msm(points: list, scalars: list[int], zero):
    acc = zero
    for point, scalar in zip(points, scalars, strict=True):
        if scalar % R:
            acc = bn128.add(acc, bn128.multiply(point, scalar % R))
    return acc


def quotient(system: R1CS, witness: list[int]) -> list[int]:
    """Coefficients of ``H(x) = (A(x)B(x) - C(x)) / Z(x)``.

    Raises:
        ValueError: If the witness does not satisfy the system.
    """
    a_vals, b_vals, c_vals = [], [], []
    for a, b, c in system.constraints:
        a_vals.append(_dot(a, witness))
        b_vals.append(_dot(b, witness))
        c_vals.append(_dot(c, witness))
    numerator = _poly_sub(
        _poly_mul(_interpolate(a_vals), _interpolate(b_vals)), _interpolate(c_vals)
    )
    h, remainder = _poly_divmod(numerator, _vanishing(len(system.constraints)))
    if any(remainder):
        raise ValueError("Witness does not satisfy the constraint system")
    return h


def prove(system: R1CS, pk: ProvingKey, witness: list[int]) -> Proof:
    """Create a proof for a full witness vector.

    Raises:
        ValueError: If the witness has the wrong shape or does not satisfy the
            constraints.
    """
    if not system.is_satisfied(witness):
        raise ValueError("Witness does not satisfy the constraint system")
    n = len(system.constraints)
    h = quotient(system, witness)
    h = (h + [0] * (n - 1))[: n - 1]

    r = secrets.randbelow(R)
    s = secrets.randbelow(R)

    a = bn128.add(
        bn128.add(pk.alpha_g1, _msm(pk.a_query, witness, bn128.Z1)),
        bn128.multiply(pk.delta_g1, r),
    )
    b = bn128.add(
        bn128.add(pk.beta_g2, _msm(pk.b_g2_query, witness, bn128.Z2)),
        bn128.multiply(pk.delta_g2, s),
    )
    b_g1 = bn128.add(
        bn128.add(pk.beta_g1, _msm(pk.b_g1_query, witness, bn128.Z1)),
        bn128.multiply(pk.delta_g1, s),
    )

    private = [w if i >= system.num_public else 0 for i, w in enumerate(witness)]
    c = _msm(pk.l_query, private, bn128.Z1)
    c = bn128.add(c, _msm(pk.h_query, h, bn128.Z1))
    c = bn128.add(c, bn128.multiply(a, s))
    c = bn128.add(c, bn128.multiply(b_g1, r))
    c = bn128.add(c, bn128.neg(bn128.multiply(pk.delta_g1, r * s % R)))
    return Proof(a=a, b=b, c=c)


def verify(vk: VerifyingKey, public_inputs: list[int], proof: Proof) -> bool:
    """Check *proof* against the public inputs (without the leading ``1``)."""
    if len(public_inputs) + 1 != len(vk.ic):
        return False
    if any(not 0 <= x < R for x in public_inputs):
        return False

    vk_x = vk.ic[0]
    for point, x in zip(vk.ic[1:], public_inputs, strict=True):
        if x:
            vk_x = bn128.add(vk_x, bn128.multiply(point, x))

    lhs = bn128.pairing(proof.b, proof.a)
    rhs = (
        bn128.pairing(vk.beta_g2, vk.alpha_g1)
        * bn128.pairing(vk.gamma_g2, vk_x)
        * bn128.pairing(vk.delta_g2, proof.c)
    )
    return lhs == rhs
