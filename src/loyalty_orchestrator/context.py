"""Explicit run context handed to every orchestrator component."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping


@dataclass(frozen=True)
class TokenParameters:
    name: str = "LoyaltyPoints"
    symbol: str = "LPT"
    decimals: int = 2


@dataclass(frozen=True)
class WorkflowParameters:
    mint_amount: int = 1000
    transfer_amount: int = 500
    allowance_amount: int = 200
    counterparties: tuple[str, ...] = ("customer1", "customer2")

    def __post_init__(self) -> None:
        for field_name in ("mint_amount", "transfer_amount", "allowance_amount"):
            value = getattr(self, field_name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ValueError(f"{field_name} must be a positive integer")
        if not self.counterparties:
            raise ValueError("counterparties must not be empty")
        if len(set(self.counterparties)) != len(self.counterparties):
            raise ValueError("counterparties must be unique")


@dataclass(frozen=True)
class OrchestratorContext:
    wallet_path: Path = Path("wallet")
    msp_id: str = "Org1MSP"
    ca_url: str = "https://localhost:7054"
    ca_name: str | None = "ca-org1"
    gateway_url: str = "http://localhost:8800"
    channel: str = "loyaltychannel"
    contract: str = "loyaltypoints"
    discovery_enabled: bool = True
    as_localhost: bool = True
    admin_name: str = "admin"
    admin_secret: str = field(default="adminpw", repr=False)
    affiliation: str = "org1.department1"
    role: str = "client"
    enrollment_secrets: Mapping[str, str] = field(default_factory=dict, repr=False)
    token: TokenParameters = field(default_factory=TokenParameters)
    workflow: WorkflowParameters = field(default_factory=WorkflowParameters)
    timeout: float = 10.0
    retries: int = 2
    verify_tls: bool | str = True

    def __post_init__(self) -> None:
        if self.admin_name in self.workflow.counterparties:
            raise ValueError("admin identity cannot also be a counterparty")
