"""Typed client for the certificate authority REST endpoints."""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from loyalty_orchestrator.crypto.keys import build_auth_token
from loyalty_orchestrator.errors import CARequestError, CAUnavailableError
from loyalty_orchestrator.types import Identity


class CAResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    success: bool
    result: Optional[Any] = None
    errors: list[dict] = []
    messages: list[dict] = []


@dataclass(frozen=True)
class RegistrationRequest:
    enrollment_id: str
    affiliation: str
    role: str = "client"
    max_enrollments: int = -1

    def to_payload(self) -> dict:
        return {
            "id": self.enrollment_id,
            "affiliation": self.affiliation,
            "type": self.role,
            "max_enrollments": self.max_enrollments,
        }


@dataclass
class CertificateAuthorityClient:
    base_url: str
    ca_name: str | None = None
    timeout: float = 10.0
    retries: int = 2
    verify_tls: bool | str = True

    def __post_init__(self) -> None:
        try:
            import requests
            from requests.adapters import HTTPAdapter
            from urllib3.util.retry import Retry
        except Exception as exc:  # pragma: no cover
            raise CAUnavailableError(f"requests stack unavailable: {exc}") from exc

        self._requests = requests
        self._session = requests.Session()
        self._session.verify = self.verify_tls
        # Register is not idempotent: only retry connections that never reached the CA.
        retry = Retry(
            total=max(0, int(self.retries)),
            connect=max(0, int(self.retries)),
            read=0,
            status=0,
            backoff_factor=0.2,
            allowed_methods=("POST",),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry)
        self._session.mount("http://", adapter)
        self._session.mount("https://", adapter)

    def _url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"

    def _with_ca_name(self, payload: dict) -> dict:
        if self.ca_name:
            return {**payload, "caname": self.ca_name}
        return payload

    def _post(self, path: str, payload: dict, *, headers=None, auth=None) -> Any:  # noqa: ANN001
        body = json.dumps(payload, separators=(",", ":")).encode("utf-8")
        request_headers = {"Content-Type": "application/json", **(headers or {})}
        try:
            response = self._session.request(
                "POST",
                self._url(path),
                data=body,
                headers=request_headers,
                auth=auth,
                timeout=self.timeout,
            )
        except self._requests.RequestException as exc:
            raise CAUnavailableError(f"certificate authority unreachable: {exc}") from exc

        try:
            raw = response.json()
        except ValueError:
            raw = None
        try:
            parsed = CAResponse.model_validate(raw)
        except ValidationError:
            parsed = None

        if response.status_code >= 400 or parsed is None or not parsed.success:
            errors = parsed.errors if parsed is not None else []
            if errors:
                detail = "; ".join(
                    f"[{e.get('code')}] {e.get('message')}" for e in errors
                )
            else:
                detail = response.text
            raise CARequestError(
                f"certificate authority request failed: {response.status_code} {detail}",
                status_code=response.status_code,
                detail=detail,
                body=raw,
                errors=errors,
            )
        return parsed.result

    def enroll(self, *, enrollment_id: str, secret: str, csr_pem: str) -> bytes:
        """Exchange an enrollment secret and CSR for a PEM certificate."""
        result = self._post(
            "/api/v1/enroll",
            self._with_ca_name({"certificate_request": csr_pem}),
            auth=(enrollment_id, secret),
        )
        cert_b64 = result.get("Cert") if isinstance(result, dict) else None
        if not isinstance(cert_b64, str) or not cert_b64:
            raise CARequestError("invalid enroll response (missing Cert)", body=result)
        return base64.b64decode(cert_b64)

    def register(self, request: RegistrationRequest, registrar: Identity) -> str:
        """Register a new enrollment id and return its one-time secret."""
        path = "/api/v1/register"
        payload = self._with_ca_name(request.to_payload())
        body = json.dumps(payload, separators=(",", ":")).encode("utf-8")
        token = build_auth_token(
            certificate_pem=registrar.certificate,
            private_key_pem=registrar.private_key,
            method="POST",
            uri=path,
            body=body,
        )
        result = self._post(path, payload, headers={"Authorization": token})
        secret = result.get("secret") if isinstance(result, dict) else None
        if not isinstance(secret, str) or not secret:
            raise CARequestError("invalid register response (missing secret)", body=result)
        return secret


__all__ = ["CertificateAuthorityClient", "RegistrationRequest", "CAResponse"]
