"""Pytest configuration and shared fixtures."""

import pytest

from zkpayroll.config.schema import PayrollConfig
from zkpayroll.proofs.circuit import DevelopmentCircuit


@pytest.fixture
def default_config() -> PayrollConfig:
    """Provide a default configuration for tests."""
    return PayrollConfig()


@pytest.fixture(scope="session")
def dev_circuit() -> DevelopmentCircuit:
    """Development circuit shared by the whole session.

    Setup and pairings run in pure Python, so one instance is reused.
    """
    return DevelopmentCircuit(seed=b"zkpayroll-test-suite")


@pytest.fixture
def blinding() -> bytes:
    """A fixed 32-byte blinding factor."""
    return bytes(range(1, 33))


@pytest.fixture
def other_blinding() -> bytes:
    """A second fixed blinding factor, distinct from ``blinding``."""
    return bytes(range(101, 133))
