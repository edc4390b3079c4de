"""Loyalty orchestrator public surface."""

from loyalty_orchestrator.ca_client import CertificateAuthorityClient, RegistrationRequest
from loyalty_orchestrator.classifier import BENIGN_KINDS, Classification, ErrorKind, classify
from loyalty_orchestrator.context import OrchestratorContext, TokenParameters, WorkflowParameters
from loyalty_orchestrator.enrollment import EnrollmentService
from loyalty_orchestrator.errors import (
    AlreadyRegisteredError,
    CARequestError,
    CAUnavailableError,
    ContractCallError,
    CredentialExistsError,
    CredentialNotFoundError,
    CredentialStoreError,
    EnrollmentError,
    LedgerConnectionError,
    LoyaltyOrchestratorError,
    SessionStateError,
    WorkflowAborted,
)
from loyalty_orchestrator.gateway import GatewayClient
from loyalty_orchestrator.orchestrator import LedgerOrchestrator, WorkflowReport
from loyalty_orchestrator.sessions import ContractHandle, Session, SessionManager
from loyalty_orchestrator.types import WORKFLOW_STATES, X509, Identity, WorkflowState
from loyalty_orchestrator.wallet import CredentialStore

__all__ = [
    "LoyaltyOrchestratorError",
    "CredentialStoreError",
    "CredentialNotFoundError",
    "CredentialExistsError",
    "EnrollmentError",
    "AlreadyRegisteredError",
    "CARequestError",
    "CAUnavailableError",
    "LedgerConnectionError",
    "ContractCallError",
    "SessionStateError",
    "WorkflowAborted",
    "Identity",
    "X509",
    "WorkflowState",
    "WORKFLOW_STATES",
    "OrchestratorContext",
    "TokenParameters",
    "WorkflowParameters",
    "CredentialStore",
    "CertificateAuthorityClient",
    "RegistrationRequest",
    "EnrollmentService",
    "GatewayClient",
    "SessionManager",
    "Session",
    "ContractHandle",
    "Classification",
    "ErrorKind",
    "BENIGN_KINDS",
    "classify",
    "LedgerOrchestrator",
    "WorkflowReport",
]
