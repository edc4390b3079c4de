"""Command-line interface for loyalty-orchestrator."""

from __future__ import annotations

import argparse
import json
import re
import sys
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as pkg_version
from typing import Sequence

from loyalty_orchestrator.ca_client import CertificateAuthorityClient
from loyalty_orchestrator.classifier import Classification, classify
from loyalty_orchestrator.cli.config import ConfigError, load_orchestrator_context
from loyalty_orchestrator.context import OrchestratorContext
from loyalty_orchestrator.enrollment import EnrollmentService
from loyalty_orchestrator.errors import (
    CredentialStoreError,
    EnrollmentError,
    LoyaltyOrchestratorError,
    WorkflowAborted,
)
from loyalty_orchestrator.gateway import GatewayClient
from loyalty_orchestrator.orchestrator import LedgerOrchestrator
from loyalty_orchestrator.sessions import SessionManager
from loyalty_orchestrator.wallet import CredentialStore

EXIT_SUCCESS = 0
EXIT_VALIDATION_ERROR = 1
EXIT_NETWORK_ERROR = 2
EXIT_ENROLLMENT_ERROR = 3
EXIT_ENDORSEMENT_FAILED = 4

_SENSITIVE_FIELDS = (
    "admin_secret",
    "enrollment_secret",
    "secret",
    "private_key",
    "privateKey",
    "password",
    "authorization",
    "token",
)

_EXIT_BY_KIND = {
    "ConnectionFailure": EXIT_NETWORK_ERROR,
    "EndorsementFailure": EXIT_ENDORSEMENT_FAILED,
    "AlreadyRegisteredRemotely": EXIT_ENROLLMENT_ERROR,
}


def _package_version() -> str:
    try:
        return pkg_version("loyalty-orchestrator")
    except PackageNotFoundError:
        return "0.0.0+local"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="loyalty-orchestrator")
    parser.add_argument(
        "--version",
        action="version",
        version=f"loyalty-orchestrator {_package_version()}",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config TOML (default: ~/.loyalty_orchestrator/config.toml)",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    version = sub.add_parser("version", help="Show version and effective network settings")
    version.add_argument("--json", action="store_true", help="Print version details as JSON")

    sub.add_parser("enroll-admin", help="Enroll the admin identity into the wallet")

    register = sub.add_parser("register", help="Register and enroll a client identity")
    register.add_argument("name", help="Enrollment id to register")

    run = sub.add_parser("run", help="Run the full loyalty points workflow")
    run.add_argument("--json", action="store_true", help="Print the final report as JSON")
    run.add_argument(
        "--debug",
        action="store_true",
        help="Include stack traces in failure diagnostics",
    )

    wallet = sub.add_parser("wallet", help="Inspect the local wallet")
    wallet_sub = wallet.add_subparsers(dest="wallet_command", required=True)
    wallet_list = wallet_sub.add_parser("list", help="List stored identity names")
    wallet_list.add_argument("--json", action="store_true")

    return parser


def _sanitize_error_text(value: str) -> str:
    redacted = value
    for field in _SENSITIVE_FIELDS:
        redacted = re.sub(
            rf"(?i)({field}\s*[=:]\s*)([^,\s]+)",
            r"\1[REDACTED]",
            redacted,
        )
    redacted = re.sub(
        r"-----BEGIN [A-Z ]*PRIVATE KEY-----.*?-----END [A-Z ]*PRIVATE KEY-----",
        "[REDACTED PRIVATE KEY]",
        redacted,
        flags=re.DOTALL,
    )
    return redacted


def _print_error(stderr, prefix: str, message: str, *, code: int) -> int:
    print(f"{prefix}: {_sanitize_error_text(message)}", file=stderr)
    return code


def _print_classified(
    stderr,
    classification: Classification,
    *,
    prefix: str,
    message: str,
    debug: bool,
    default_code: int = EXIT_VALIDATION_ERROR,
) -> int:
    code = _EXIT_BY_KIND.get(classification.kind, default_code)
    _print_error(stderr, prefix, f"[{classification.kind}] {message}", code=code)
    for endorsement in classification.endorsements:
        print(
            f"  endorsement: {_sanitize_error_text(json.dumps(endorsement, sort_keys=True))}",
            file=stderr,
        )
    if debug and classification.stack:
        print(_sanitize_error_text(classification.stack), file=stderr)
    return code


def _build_components(
    context: OrchestratorContext,
) -> tuple[CredentialStore, EnrollmentService, SessionManager]:
    store = CredentialStore(context.wallet_path)
    ca = CertificateAuthorityClient(
        base_url=context.ca_url,
        ca_name=context.ca_name,
        timeout=context.timeout,
        retries=context.retries,
        verify_tls=context.verify_tls,
    )
    gateway = GatewayClient(
        base_url=context.gateway_url,
        channel=context.channel,
        contract=context.contract,
        timeout=context.timeout,
        retries=context.retries,
        verify_tls=context.verify_tls,
    )
    enrollment = EnrollmentService(context=context, store=store, ca=ca)
    sessions = SessionManager(context=context, gateway=gateway)
    return store, enrollment, sessions


def _run_version(*, context: OrchestratorContext, as_json: bool, stdout) -> int:
    payload = {
        "cli": "loyalty-orchestrator",
        "version": _package_version(),
        "msp_id": context.msp_id,
        "ca_url": context.ca_url,
        "gateway_url": context.gateway_url,
        "channel": context.channel,
        "contract": context.contract,
        "wallet_path": str(context.wallet_path),
    }
    if as_json:
        print(json.dumps(payload, sort_keys=True), file=stdout)
    else:
        print(f"loyalty-orchestrator {payload['version']}", file=stdout)
        print(f"msp: {payload['msp_id']}", file=stdout)
        print(f"ca: {payload['ca_url']}", file=stdout)
        print(
            f"gateway: {payload['gateway_url']} ({payload['channel']}/{payload['contract']})",
            file=stdout,
        )
        print(f"wallet: {payload['wallet_path']}", file=stdout)
    return EXIT_SUCCESS


def _run_enroll_admin(*, context: OrchestratorContext, stdout, stderr) -> int:
    _, enrollment, _ = _build_components(context)
    try:
        identity, created = enrollment.enroll_admin()
    except LoyaltyOrchestratorError as exc:
        return _print_classified(
            stderr,
            classify(exc),
            prefix="enrollment error",
            message=str(exc),
            debug=False,
            default_code=EXIT_ENROLLMENT_ERROR,
        )
    if created:
        print(f"{identity.name} enrolled and stored in wallet", file=stdout)
    else:
        print(f"{identity.name} identity already exists in wallet", file=stdout)
    return EXIT_SUCCESS


def _run_register(*, args, context: OrchestratorContext, stdout, stderr) -> int:
    store, enrollment, _ = _build_components(context)
    if not store.exists(context.admin_name):
        return _print_error(
            stderr,
            "enrollment error",
            f"{context.admin_name} identity missing from wallet; run `enroll-admin` first",
            code=EXIT_ENROLLMENT_ERROR,
        )
    try:
        admin = store.get(context.admin_name)
        identity, created = enrollment.register_and_enroll(args.name, admin)
    except LoyaltyOrchestratorError as exc:
        classification = classify(exc)
        if classification.kind == "AlreadyRegisteredRemotely":
            print(f"{args.name} is already registered; skipping registration", file=stderr)
        return _print_classified(
            stderr,
            classification,
            prefix="enrollment error",
            message=str(exc),
            debug=False,
            default_code=EXIT_ENROLLMENT_ERROR,
        )
    if created:
        print(f"{identity.name} registered, enrolled and stored in wallet", file=stdout)
    else:
        print(f"{identity.name} identity already exists in wallet", file=stdout)
    return EXIT_SUCCESS


def _run_workflow(*, args, context: OrchestratorContext, stdout, stderr) -> int:
    _, enrollment, sessions = _build_components(context)
    orchestrator = LedgerOrchestrator(
        context=context,
        enrollment=enrollment,
        sessions=sessions,
        stdout=None if args.json else stdout,
    )
    try:
        report = orchestrator.run()
    except WorkflowAborted as exc:
        return _print_classified(
            stderr,
            exc.classification,
            prefix="workflow error",
            message=str(exc),
            debug=args.debug,
            default_code=(
                EXIT_ENROLLMENT_ERROR
                if isinstance(exc.__cause__, EnrollmentError)
                else EXIT_VALIDATION_ERROR
            ),
        )

    if args.json:
        print(json.dumps(report.to_dict(), sort_keys=True), file=stdout)
    else:
        print("workflow complete", file=stdout)
    return EXIT_SUCCESS


def _run_wallet_list(*, args, context: OrchestratorContext, stdout, stderr) -> int:
    store = CredentialStore(context.wallet_path)
    try:
        names = store.list()
    except CredentialStoreError as exc:
        return _print_error(stderr, "wallet error", str(exc), code=EXIT_VALIDATION_ERROR)
    if args.json:
        payload = {"wallet_path": str(context.wallet_path), "identities": names}
        print(json.dumps(payload, sort_keys=True), file=stdout)
    else:
        for name in names:
            print(name, file=stdout)
    return EXIT_SUCCESS


def main(argv: Sequence[str] | None = None, *, stdout=sys.stdout, stderr=sys.stderr) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        context = load_orchestrator_context(args.config)
    except ConfigError as exc:
        return _print_error(stderr, "config error", str(exc), code=EXIT_VALIDATION_ERROR)

    if args.command == "version":
        return _run_version(context=context, as_json=args.json, stdout=stdout)

    if args.command == "enroll-admin":
        return _run_enroll_admin(context=context, stdout=stdout, stderr=stderr)

    if args.command == "register":
        return _run_register(args=args, context=context, stdout=stdout, stderr=stderr)

    if args.command == "run":
        return _run_workflow(args=args, context=context, stdout=stdout, stderr=stderr)

    if args.command == "wallet":
        if args.wallet_command == "list":
            return _run_wallet_list(args=args, context=context, stdout=stdout, stderr=stderr)

    print("unknown command", file=stderr)
    return EXIT_VALIDATION_ERROR


if __name__ == "__main__":
    raise SystemExit(main())
