"""Blinding-factor storage.

Each active employee has exactly one blinding factor (and the salary it
commits to) held by the employer side. Backends:

- InMemorySecretStore: process-local, not durable (tests and development)
- EncryptedFileSecretStore: AES-GCM encrypted JSON file
- VaultSecretStore: HashiCorp Vault KV v2 (production)

Stores have an explicit lifecycle (:meth:`SecretStore.open` /
:meth:`SecretStore.close`, or ``async with``) and expose a per-key lock.
Backend methods do not lock on their own; callers hold
:meth:`SecretStore.lock` around any read that feeds a proof and around
rotations and deletions, so a proof is never built from a half-rotated
secret.
"""

import asyncio
import base64
import json
import logging
import os
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import quote, unquote

import httpx
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from zkpayroll.config.schema import SecretsConfig
from zkpayroll.crypto.commitment import BLINDING_FACTOR_SIZE
from zkpayroll.errors import SecretNotFoundError, SecretStoreError
from zkpayroll.locks import KeyedLock

logger = logging.getLogger(__name__)

_NONCE_SIZE = 12
_KEY_SIZE = 32

KEY_ENV_VAR = "ZKPAYROLL_SECRET_KEY"


@dataclass(eq=False, repr=False)
class EmployeeSecret:
    """Salary and blinding factor behind one commitment."""

    salary: int
    blinding: bytes

    def __post_init__(self) -> None:
        if len(self.blinding) != BLINDING_FACTOR_SIZE:
            raise SecretStoreError(f"Blinding factor must be {BLINDING_FACTOR_SIZE} bytes")

    def __repr__(self) -> str:
        return "EmployeeSecret(<redacted>)"

    def to_dict(self) -> dict[str, Any]:
        return {"salary": str(self.salary), "blinding": self.blinding.hex()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EmployeeSecret":
        try:
            return cls(salary=int(data["salary"]), blinding=bytes.fromhex(data["blinding"]))
        except (KeyError, TypeError, ValueError) as e:
            raise SecretStoreError(f"Malformed secret entry: {e}") from e


class SecretStore(ABC):
    """Abstract base class for blinding-factor stores."""

    name: str = "secret-store"

    def __init__(self) -> None:
        self._locks = KeyedLock()
        self._opened = False

    async def open(self) -> None:
        """Acquire backend resources."""
        self._opened = True

    async def close(self) -> None:
        """Release backend resources."""
        self._opened = False

    async def __aenter__(self) -> "SecretStore":
        await self.open()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    def _require_open(self) -> None:
        if not self._opened:
            raise SecretStoreError(f"{self.name} is not open")

    @asynccontextmanager
    async def lock(self, company: str, employee: str) -> AsyncIterator[None]:
        """Exclusive access to one employee's secret."""
        async with self._locks.hold((company, employee)):
            yield

    @abstractmethod
    async def get(self, company: str, employee: str) -> EmployeeSecret:
        """Fetch the secret.

        Raises:
            SecretNotFoundError: If nothing is stored for the employee.
        """

    @abstractmethod
    async def put(self, company: str, employee: str, secret: EmployeeSecret) -> None:
        """Store or replace the secret."""

    @abstractmethod
    async def delete(self, company: str, employee: str) -> None:
        """Erase the secret. Deleting a missing secret is a no-op."""

    @abstractmethod
    async def list_employees(self, company: str) -> list[str]:
        """Employees of *company* that have a stored secret."""


def _not_found(company: str, employee: str) -> SecretNotFoundError:
    return SecretNotFoundError(
        f"No blinding factor stored for {employee} at {company}",
        details={"company": company, "employee": employee},
    )


class InMemorySecretStore(SecretStore):
    """Dictionary-backed store. Contents are lost when the process exits."""

    name = "memory"

    def __init__(self) -> None:
        super().__init__()
        self._secrets: dict[tuple[str, str], tuple[int, bytearray]] = {}

    async def get(self, company: str, employee: str) -> EmployeeSecret:
        self._require_open()
        entry = self._secrets.get((company, employee))
        if entry is None:
            raise _not_found(company, employee)
        salary, blinding = entry
        return EmployeeSecret(salary=salary, blinding=bytes(blinding))

    async def put(self, company: str, employee: str, secret: EmployeeSecret) -> None:
        self._require_open()
        await self.delete(company, employee)
        self._secrets[(company, employee)] = (secret.salary, bytearray(secret.blinding))

    async def delete(self, company: str, employee: str) -> None:
        self._require_open()
        entry = self._secrets.pop((company, employee), None)
        if entry is not None:
            blinding = entry[1]
            blinding[:] = bytes(len(blinding))

    async def list_employees(self, company: str) -> list[str]:
        self._require_open()
        return sorted(e for c, e in self._secrets if c == company)

    async def close(self) -> None:
        for _, blinding in self._secrets.values():
            blinding[:] = bytes(len(blinding))
        self._secrets.clear()
        await super().close()


class EncryptedFileSecretStore(SecretStore):
    """AES-GCM encrypted JSON file.

    Every entry is sealed separately with a fresh nonce, and the entry's
    ``company/employee`` name is bound as associated data so ciphertexts
    cannot be swapped between employees.

    Args:
        path: Secrets file location
        key: 32-byte AES key; defaults to the hex value of
            ``ZKPAYROLL_SECRET_KEY``
    """

    name = "file"

    def __init__(self, path: str | Path = "~/.zkpayroll/secrets.enc.json", key: bytes | None = None):
        super().__init__()
        self.path = Path(path).expanduser()
        if key is None:
            env_key = os.getenv(KEY_ENV_VAR)
            if not env_key:
                raise SecretStoreError(f"Encryption key required (set {KEY_ENV_VAR} or pass key)")
            try:
                key = bytes.fromhex(env_key)
            except ValueError as e:
                raise SecretStoreError(f"{KEY_ENV_VAR} is not valid hex") from e
        if len(key) != _KEY_SIZE:
            raise SecretStoreError(f"Encryption key must be {_KEY_SIZE} bytes")
        self._aesgcm = AESGCM(key)
        self._entries: dict[str, str] = {}
        self._write_lock = asyncio.Lock()

    @staticmethod
    def _entry_name(company: str, employee: str) -> str:
        return f"{quote(company, safe='')}/{quote(employee, safe='')}"

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            document = json.loads(self.path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise SecretStoreError(f"Cannot read secrets file {self.path}: {e}") from e
        return dict(document.get("entries", {}))

    def _save(self, entries: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps({"version": 1, "entries": entries}, indent=2))
        tmp.chmod(0o600)
        os.replace(tmp, self.path)

    async def open(self) -> None:
        self._entries = await asyncio.to_thread(self._load)
        await super().open()
        logger.info("Opened encrypted secret store %s (%d entries)", self.path, len(self._entries))

    async def close(self) -> None:
        self._entries = {}
        await super().close()

    def _seal(self, name: str, secret: EmployeeSecret) -> str:
        nonce = os.urandom(_NONCE_SIZE)
        plaintext = json.dumps(secret.to_dict()).encode()
        ciphertext = nonce + self._aesgcm.encrypt(nonce, plaintext, name.encode())
        return base64.b64encode(ciphertext).decode("ascii")

    def _unseal(self, name: str, sealed: str) -> EmployeeSecret:
        raw = base64.b64decode(sealed)
        try:
            plaintext = self._aesgcm.decrypt(raw[:_NONCE_SIZE], raw[_NONCE_SIZE:], name.encode())
        except InvalidTag as e:
            raise SecretStoreError(f"Secret entry {name} failed authentication") from e
        return EmployeeSecret.from_dict(json.loads(plaintext))

    async def get(self, company: str, employee: str) -> EmployeeSecret:
        self._require_open()
        name = self._entry_name(company, employee)
        sealed = self._entries.get(name)
        if sealed is None:
            raise _not_found(company, employee)
        return self._unseal(name, sealed)

    async def _update(self, name: str, sealed: str | None) -> None:
        async with self._write_lock:
            entries = dict(self._entries)
            if sealed is None:
                entries.pop(name, None)
            else:
                entries[name] = sealed
            await asyncio.to_thread(self._save, entries)
            self._entries = entries

    async def put(self, company: str, employee: str, secret: EmployeeSecret) -> None:
        self._require_open()
        name = self._entry_name(company, employee)
        await self._update(name, self._seal(name, secret))

    async def delete(self, company: str, employee: str) -> None:
        self._require_open()
        name = self._entry_name(company, employee)
        if name in self._entries:
            await self._update(name, None)

    async def list_employees(self, company: str) -> list[str]:
        self._require_open()
        prefix = quote(company, safe="") + "/"
        return sorted(unquote(n[len(prefix) :]) for n in self._entries if n.startswith(prefix))


class VaultSecretStore(SecretStore):
    """HashiCorp Vault KV v2 store.

    Secrets live at ``{mount_point}/data/{path_prefix}/{company}/{employee}``.
    Deletion removes the metadata path, destroying every version.

    Args:
        vault_addr: Vault server address
        vault_token: Vault token (or use VAULT_TOKEN env var)
        vault_namespace: Vault namespace (enterprise feature)
        mount_point: KV secrets engine mount point
        path_prefix: Path under the mount holding payroll secrets
    """

    name = "vault"

    def __init__(
        self,
        vault_addr: str = "http://127.0.0.1:8200",
        vault_token: str | None = None,
        vault_namespace: str | None = None,
        mount_point: str = "secret",
        path_prefix: str = "zkpayroll",
    ):
        super().__init__()
        self.vault_addr = vault_addr
        self.vault_token = vault_token or os.getenv("VAULT_TOKEN")
        self.vault_namespace = vault_namespace
        self.mount_point = mount_point
        self.path_prefix = path_prefix.strip("/")

        if not self.vault_token:
            raise SecretStoreError("Vault token required (set VAULT_TOKEN or pass vault_token)")

        self.client: httpx.AsyncClient | None = None

    def _get_headers(self) -> dict[str, str]:
        headers = {"X-Vault-Token": self.vault_token}
        if self.vault_namespace:
            headers["X-Vault-Namespace"] = self.vault_namespace
        return headers

    def _path(self, kind: str, company: str, employee: str | None = None) -> str:
        path = f"/v1/{self.mount_point}/{kind}/{self.path_prefix}/{quote(company, safe='')}"
        if employee is not None:
            path += f"/{quote(employee, safe='')}"
        return path

    async def open(self) -> None:
        if self.client is None:
            self.client = httpx.AsyncClient(
                base_url=self.vault_addr,
                headers=self._get_headers(),
                timeout=30.0,
            )
        await super().open()

    async def close(self) -> None:
        if self.client is not None:
            await self.client.aclose()
            self.client = None
        await super().close()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        self._require_open()
        try:
            return await self.client.request(method, path, **kwargs)
        except httpx.RequestError as e:
            raise SecretStoreError(f"Failed to connect to Vault: {e}") from e

    async def get(self, company: str, employee: str) -> EmployeeSecret:
        response = await self._request("GET", self._path("data", company, employee))
        if response.status_code == 404:
            raise _not_found(company, employee)
        if response.status_code != 200:
            raise SecretStoreError(f"Vault error: {response.status_code} - {response.text}")

        # KV v2 nests data under data.data
        secret_data = response.json().get("data", {}).get("data", {})
        return EmployeeSecret.from_dict(secret_data)

    async def put(self, company: str, employee: str, secret: EmployeeSecret) -> None:
        response = await self._request(
            "POST", self._path("data", company, employee), json={"data": secret.to_dict()}
        )
        if response.status_code not in (200, 204):
            raise SecretStoreError(
                f"Failed to store secret: {response.status_code} - {response.text}"
            )
        logger.debug("Stored secret for %s/%s in Vault", company, employee)

    async def delete(self, company: str, employee: str) -> None:
        response = await self._request("DELETE", self._path("metadata", company, employee))
        if response.status_code not in (200, 204, 404):
            raise SecretStoreError(f"Failed to delete secret: {response.status_code}")

    async def list_employees(self, company: str) -> list[str]:
        response = await self._request("LIST", self._path("metadata", company) + "/")
        if response.status_code == 404:
            return []
        if response.status_code != 200:
            raise SecretStoreError(f"Failed to list secrets: {response.status_code}")
        keys = response.json().get("data", {}).get("keys", [])
        return sorted(unquote(k) for k in keys if not k.endswith("/"))


def create_secret_store(config: SecretsConfig) -> SecretStore:
    """Build the store selected by *config*.

    Raises:
        SecretStoreError: If the backend is unknown or misconfigured.
    """
    if config.backend == "memory":
        logger.warning("Using in-memory secret store; blinding factors are not durable")
        return InMemorySecretStore()
    if config.backend == "file":
        return EncryptedFileSecretStore(path=config.file_path)
    if config.backend == "vault":
        return VaultSecretStore(
            vault_addr=config.vault_addr,
            vault_namespace=config.vault_namespace,
            mount_point=config.vault_mount,
            path_prefix=config.vault_path_prefix,
        )
    raise SecretStoreError(f"Unknown secret store backend: {config.backend}")
