"""Orchestrator public types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

IdentityKind = Literal["X.509"]

X509: IdentityKind = "X.509"

WorkflowState = Literal[
    "Start",
    "AdminReady",
    "Initialized",
    "Funded",
    "Distributed",
    "Approved",
    "Settled",
]

WORKFLOW_STATES: tuple[WorkflowState, ...] = (
    "Start",
    "AdminReady",
    "Initialized",
    "Funded",
    "Distributed",
    "Approved",
    "Settled",
)


@dataclass(frozen=True)
class Identity:
    name: str
    msp_id: str
    certificate: bytes
    private_key: bytes = field(repr=False)
    kind: IdentityKind = X509

    @property
    def certificate_pem(self) -> str:
        return self.certificate.decode("utf-8")


__all__ = ["Identity", "IdentityKind", "X509", "WorkflowState", "WORKFLOW_STATES"]
