"""File-system wallet holding enrolled identities."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from loyalty_orchestrator.errors import (
    CredentialExistsError,
    CredentialNotFoundError,
    CredentialStoreError,
)
from loyalty_orchestrator.types import Identity

RECORD_SUFFIX = ".id"


class WalletCredentials(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    certificate: str
    private_key: str = Field(alias="privateKey")


class WalletRecord(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    name: str = Field(..., min_length=1)
    msp_id: str = Field(..., alias="mspId", min_length=1)
    credentials: WalletCredentials
    type: Literal["X.509"] = "X.509"
    version: int = 1

    @classmethod
    def from_identity(cls, identity: Identity) -> "WalletRecord":
        return cls(
            name=identity.name,
            msp_id=identity.msp_id,
            credentials=WalletCredentials(
                certificate=identity.certificate.decode("utf-8"),
                private_key=identity.private_key.decode("utf-8"),
            ),
            type=identity.kind,
        )

    def to_identity(self) -> Identity:
        return Identity(
            name=self.name,
            msp_id=self.msp_id,
            certificate=self.credentials.certificate.encode("utf-8"),
            private_key=self.credentials.private_key.encode("utf-8"),
            kind=self.type,
        )


def _chmod_owner_only(path: Path) -> None:
    if os.name != "posix":
        return
    path.chmod(0o600)


def _validate_name(name: str) -> str:
    if not name or name in {".", ".."} or "/" in name or "\\" in name:
        raise CredentialStoreError(f"invalid identity name: {name!r}")
    return name


class CredentialStore:
    """Name -> Identity mapping persisted as one JSON record per identity.

    There is no writer coordination: callers check ``exists`` before ``put`` and
    a single process owns the directory.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _record_path(self, name: str) -> Path:
        return self.path / f"{_validate_name(name)}{RECORD_SUFFIX}"

    def exists(self, name: str) -> bool:
        return self._record_path(name).is_file()

    def get(self, name: str) -> Identity:
        record_path = self._record_path(name)
        if not record_path.is_file():
            raise CredentialNotFoundError(f"identity not found in wallet: {name}")
        try:
            record = WalletRecord.model_validate(
                json.loads(record_path.read_text(encoding="utf-8"))
            )
        except (ValueError, ValidationError) as exc:
            raise CredentialStoreError(f"invalid wallet record: {record_path}") from exc
        if record.name != name:
            raise CredentialStoreError(
                f"wallet record {record_path} belongs to {record.name!r}, not {name!r}"
            )
        return record.to_identity()

    def put(self, name: str, identity: Identity) -> Path:
        if identity.name != name:
            raise CredentialStoreError(
                f"identity name {identity.name!r} does not match wallet key {name!r}"
            )
        record_path = self._record_path(name)
        if record_path.exists():
            raise CredentialExistsError(f"identity already exists in wallet: {name}")

        self.path.mkdir(parents=True, exist_ok=True)
        record = WalletRecord.from_identity(identity)
        serialized = record.model_dump(by_alias=True)
        try:
            record_path.write_text(json.dumps(serialized, indent=2) + "\n", encoding="utf-8")
        except OSError as exc:
            raise CredentialStoreError(f"failed to write wallet record: {record_path}") from exc
        _chmod_owner_only(record_path)
        return record_path

    def list(self) -> list[str]:
        if not self.path.is_dir():
            return []
        return sorted(p.name[: -len(RECORD_SUFFIX)] for p in self.path.glob(f"*{RECORD_SUFFIX}"))
