"""Async HTTP client for the EasySign persistence service."""
from typing import Any, Dict, List, Optional

import httpx

from ..config import ADMIN_ACCESS_TOKEN, EASYSIGN_API_URL
from .errors import TransientError, error_for_response


def _detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        detail = body.get("detail") or body.get("error")
        if detail:
            return str(detail)
    return response.text or response.reason_phrase


class EasySignClient:
    """Thin wrapper around ``httpx.AsyncClient`` for the signer and field endpoints.

    ``transport`` lets tests run the FastAPI app in-process through
    ``httpx.ASGITransport``.
    """

    def __init__(
        self,
        base_url: str = EASYSIGN_API_URL,
        access_token: Optional[str] = ADMIN_ACCESS_TOKEN,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ):
        headers = {"X-Access-Token": access_token} if access_token else {}
        self._http = httpx.AsyncClient(base_url=base_url, headers=headers, transport=transport, timeout=timeout)

    async def __aenter__(self) -> "EasySignClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Any:
        try:
            response = await self._http.request(method, path, json=json)
        except httpx.TransportError as exc:
            raise TransientError(f"{method} {path} failed: {exc}") from exc
        if response.is_error:
            raise error_for_response(response.status_code, _detail(response))
        if not response.content:
            return None
        return response.json()

    # signers

    async def list_signers(self, document_id: str) -> List[Dict[str, Any]]:
        return await self._request("GET", f"/documents/{document_id}/signers")

    async def create_signer(self, document_id: str, email: str, name: str, order: int = 0) -> Dict[str, Any]:
        return await self._request(
            "POST", f"/documents/{document_id}/signers", json={"email": email, "name": name, "order": order}
        )

    async def update_signer(self, document_id: str, signer_id: str, **changes) -> Dict[str, Any]:
        return await self._request("PATCH", f"/documents/{document_id}/signers/{signer_id}", json=changes)

    async def delete_signer(self, document_id: str, signer_id: str) -> None:
        await self._request("DELETE", f"/documents/{document_id}/signers/{signer_id}")

    # fields

    async def list_fields(self, document_id: str) -> List[Dict[str, Any]]:
        return await self._request("GET", f"/documents/{document_id}/fields")

    async def create_field(self, document_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", f"/documents/{document_id}/fields", json=payload)

    async def update_field(self, document_id: str, field_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("PATCH", f"/documents/{document_id}/fields/{field_id}", json=payload)

    async def delete_field(self, document_id: str, field_id: str) -> None:
        await self._request("DELETE", f"/documents/{document_id}/fields/{field_id}")
