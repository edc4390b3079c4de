"""Failure classification for the orchestrator.

Every decision to skip, branch or abort is taken on ``Classification.kind``; no
other module inspects error codes or message text.
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from typing import Literal

from loyalty_orchestrator.errors import (
    AlreadyRegisteredError,
    CARequestError,
    ContractCallError,
    CredentialExistsError,
    LedgerConnectionError,
)

ErrorKind = Literal[
    "IdentityAlreadyLocal",
    "AlreadyRegisteredRemotely",
    "ContractNotInitialized",
    "EndorsementFailure",
    "ConnectionFailure",
    "Unclassified",
]

BENIGN_KINDS: frozenset[str] = frozenset(
    {"IdentityAlreadyLocal", "AlreadyRegisteredRemotely", "ContractNotInitialized"}
)

# Fabric CA error code for a duplicate registration.
CA_CODE_ALREADY_REGISTERED = 74
ALREADY_REGISTERED_TEXT = "is already registered"

ENDORSEMENT_ERROR_CODE = "ENDORSEMENT_FAILURE"
NOT_INITIALIZED_ERROR_CODE = "CONTRACT_NOT_INITIALIZED"
_NOT_INITIALIZED_TEXTS = ("call initialize()", "not initialized", "not yet initialized")


@dataclass(frozen=True)
class Classification:
    kind: ErrorKind
    message: str
    endorsements: list[dict] = field(default_factory=list)
    stack: str | None = None

    @property
    def benign(self) -> bool:
        return self.kind in BENIGN_KINDS


def _is_already_registered(exc: BaseException) -> bool:
    if isinstance(exc, AlreadyRegisteredError):
        return True
    if isinstance(exc, CARequestError) and CA_CODE_ALREADY_REGISTERED in exc.codes:
        return True
    # Message match kept from the CA's legacy behaviour; any error mentioning a
    # duplicate registration is treated as one.
    return isinstance(exc, CARequestError) and ALREADY_REGISTERED_TEXT in str(exc)


def _is_not_initialized(exc: ContractCallError) -> bool:
    if exc.error_code == NOT_INITIALIZED_ERROR_CODE:
        return True
    if exc.error_code is not None:
        return False
    text = str(exc.detail if isinstance(exc.detail, str) else exc).lower()
    return any(marker in text for marker in _NOT_INITIALIZED_TEXTS)


def _stack(exc: BaseException) -> str | None:
    if exc.__traceback__ is None:
        return None
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))


def classify(exc: BaseException) -> Classification:
    message = str(exc) or type(exc).__name__

    if isinstance(exc, CredentialExistsError):
        return Classification("IdentityAlreadyLocal", message)
    if _is_already_registered(exc):
        return Classification("AlreadyRegisteredRemotely", message)
    if isinstance(exc, LedgerConnectionError):
        return Classification("ConnectionFailure", message, stack=_stack(exc))
    if isinstance(exc, ContractCallError) and exc.error_code == ENDORSEMENT_ERROR_CODE:
        return Classification(
            "EndorsementFailure", message, endorsements=exc.endorsements, stack=_stack(exc)
        )
    if isinstance(exc, ContractCallError) and _is_not_initialized(exc):
        return Classification("ContractNotInitialized", message)
    return Classification("Unclassified", message, stack=_stack(exc))


__all__ = ["Classification", "ErrorKind", "BENIGN_KINDS", "classify"]
