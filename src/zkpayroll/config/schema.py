"""Pydantic models for zkpayroll.yaml configuration."""

from typing import Literal

from pydantic import BaseModel, Field


class CircuitConfig(BaseModel):
    """Payment circuit artifacts."""

    backend: Literal["development", "snarkjs"] = Field(
        default="development",
        description="'development' (in-process, insecure setup) or 'snarkjs' (compiled circuit)",
    )
    wasm_path: str = Field(
        default="./circuits/payment.wasm",
        description="Witness generator produced by circom",
    )
    zkey_path: str = Field(
        default="./circuits/payment_final.zkey",
        description="Final Groth16 proving key",
    )
    verification_key_path: str = Field(
        default="./circuits/verification_key.json",
        description="Verification key exported from the zkey",
    )
    snarkjs_bin: str = Field(default="snarkjs", description="snarkjs executable")
    dev_seed: str = Field(
        default="zkpayroll-development-circuit",
        description="Seed for the development circuit's trusted setup (never use in production)",
    )


class ProvingConfig(BaseModel):
    """Proof generation limits."""

    max_concurrent_proofs: int = Field(
        default=4,
        description="Maximum number of proofs computed at the same time",
        ge=1,
        le=64,
    )
    proof_timeout: float | None = Field(
        default=120.0,
        description="Seconds before an in-flight proof is abandoned (null disables)",
        gt=0,
    )


class SecretsConfig(BaseModel):
    """Blinding-factor store configuration."""

    backend: Literal["memory", "file", "vault"] = Field(
        default="file",
        description="'memory' (tests only), 'file' (AES-GCM file) or 'vault' (HashiCorp Vault)",
    )
    file_path: str = Field(
        default="~/.zkpayroll/secrets.enc.json",
        description="Encrypted secrets file (key from ZKPAYROLL_SECRET_KEY)",
    )
    vault_addr: str = Field(
        default="http://127.0.0.1:8200",
        description="Vault server address (token from VAULT_TOKEN)",
    )
    vault_namespace: str | None = Field(default=None, description="Vault namespace")
    vault_mount: str = Field(default="secret", description="KV v2 mount point")
    vault_path_prefix: str = Field(default="zkpayroll", description="Path under the mount")


class AuditConfig(BaseModel):
    """Auditor view key policy."""

    max_view_key_days: int = Field(
        default=365,
        description="Longest lifetime a view key may be issued with",
        ge=1,
    )


class RecordsConfig(BaseModel):
    """Payment record store."""

    db_path: str = Field(
        default="~/.zkpayroll/records.db",
        description="Path to SQLite payment record database",
    )


class ContractsConfig(BaseModel):
    """Ledger contract addresses (consumed by ledger adapters)."""

    registry: str | None = Field(default=None, description="Company/employee registry")
    commitment: str | None = Field(default=None, description="Commitment contract")
    verifier: str | None = Field(default=None, description="Groth16 verifier contract")
    executor: str | None = Field(default=None, description="Payment executor contract")


class PayrollConfig(BaseModel):
    """Root configuration schema for zkpayroll."""

    network: Literal["testnet", "mainnet"] = Field(default="testnet", description="Target network")
    circuit: CircuitConfig = Field(default_factory=CircuitConfig)
    proving: ProvingConfig = Field(default_factory=ProvingConfig)
    secrets: SecretsConfig = Field(default_factory=SecretsConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)
    records: RecordsConfig = Field(default_factory=RecordsConfig)
    contracts: ContractsConfig = Field(default_factory=ContractsConfig)
