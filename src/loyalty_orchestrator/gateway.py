"""Typed client for the ledger gateway REST endpoints."""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass

from loyalty_orchestrator.crypto.keys import sign_b64
from loyalty_orchestrator.errors import ContractCallError, LedgerConnectionError
from loyalty_orchestrator.types import Identity

SIGNATURE_HEADER = "x-ledger-signature"


def _canonical_bytes(payload: dict) -> bytes:
    return json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    ).encode("utf-8")


@dataclass
class GatewayClient:
    base_url: str
    channel: str
    contract: str
    timeout: float = 10.0
    retries: int = 2
    verify_tls: bool | str = True

    def __post_init__(self) -> None:
        try:
            import requests
            from requests.adapters import HTTPAdapter
            from urllib3.util.retry import Retry
        except Exception as exc:  # pragma: no cover
            raise LedgerConnectionError(f"requests stack unavailable: {exc}") from exc

        self._requests = requests
        self._session = requests.Session()
        self._session.verify = self.verify_tls
        # Submits are not idempotent: never replay a request the gateway may have seen.
        retry = Retry(
            total=max(0, int(self.retries)),
            connect=max(0, int(self.retries)),
            read=0,
            status=0,
            backoff_factor=0.2,
            allowed_methods=("POST", "DELETE"),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry)
        self._session.mount("http://", adapter)
        self._session.mount("https://", adapter)

    def _url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"

    def _request(
        self,
        method: str,
        path: str,
        *,
        identity: Identity,
        json_payload: dict | None = None,
    ) -> dict:
        body = _canonical_bytes(json_payload) if json_payload is not None else b""
        headers = {
            "Content-Type": "application/json",
            SIGNATURE_HEADER: sign_b64(identity.private_key, body),
        }
        try:
            response = self._session.request(
                method,
                self._url(path),
                data=body or None,
                headers=headers,
                timeout=self.timeout,
            )
        except self._requests.RequestException as exc:
            raise LedgerConnectionError(f"ledger gateway unreachable: {exc}") from exc

        if response.status_code >= 400:
            body_json: object | None = None
            detail: object | None = None
            error_code: str | None = None
            try:
                body_json = response.json()
            except Exception:
                body_json = None
            if isinstance(body_json, dict):
                detail = body_json.get("detail")
                raw_error_code = body_json.get("error_code")
                error_code = str(raw_error_code) if isinstance(raw_error_code, str) else None
            if isinstance(detail, str):
                message = f"ledger request failed: {response.status_code} {detail}"
            else:
                message = f"ledger request failed: {response.status_code} {response.text}"
            if response.status_code in (502, 503, 504) and error_code is None:
                raise LedgerConnectionError(message)
            raise ContractCallError(
                message,
                status_code=response.status_code,
                detail=detail,
                error_code=error_code,
                body=body_json,
            )
        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    def open_session(self, identity: Identity, *, discovery: bool, as_localhost: bool) -> str:
        response = self._request(
            "POST",
            "/v1/sessions",
            identity=identity,
            json_payload={
                "msp_id": identity.msp_id,
                "certificate": identity.certificate_pem,
                "channel": self.channel,
                "contract": self.contract,
                "discovery": {"enabled": discovery, "as_localhost": as_localhost},
            },
        )
        session_id = response.get("session_id")
        if not isinstance(session_id, str) or not session_id:
            raise LedgerConnectionError("invalid session response (missing session_id)")
        return session_id

    def close_session(self, identity: Identity, session_id: str) -> None:
        self._request("DELETE", f"/v1/sessions/{session_id}", identity=identity)

    def _transact(
        self, kind: str, identity: Identity, session_id: str, name: str, args: tuple[str, ...]
    ) -> bytes:
        response = self._request(
            "POST",
            f"/v1/sessions/{session_id}/{kind}",
            identity=identity,
            json_payload={"transaction": name, "args": list(args)},
        )
        result_b64 = response.get("result_b64", "")
        if not isinstance(result_b64, str):
            raise ContractCallError(f"invalid {kind} response for {name}", body=response)
        return base64.b64decode(result_b64)

    def submit(
        self, identity: Identity, session_id: str, name: str, args: tuple[str, ...]
    ) -> bytes:
        return self._transact("submit", identity, session_id, name, args)

    def evaluate(
        self, identity: Identity, session_id: str, name: str, args: tuple[str, ...]
    ) -> bytes:
        return self._transact("evaluate", identity, session_id, name, args)


__all__ = ["GatewayClient"]
