"""
Credential Directory Client

Thin client for the three key-lifecycle endpoints of the ledger's REST API:

    GET  /api_keys/identity/{signer_id}           lookup by identity
    POST /ledgers/{ledger_id}/api_keys            create
    PUT  /ledgers/{ledger_id}/api_keys/{id}/rotate rotate

Every call is a single blocking request with a fixed timeout. There is no
retry: any unexpected status or transport failure raises DirectoryError.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import quote

import requests

from .config import DirectoryConfig
from .errors import DirectoryError


@dataclass(frozen=True)
class ApiKey:
    """An API key record as returned by the directory."""
    id: str
    key: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ApiKey':
        if not isinstance(data, dict) or "id" not in data or "key" not in data:
            raise ValueError(f"not an API key record: {data!r}")
        return cls(id=str(data["id"]), key=str(data["key"]))

    def __repr__(self) -> str:
        return f"ApiKey(id={self.id!r})"


class DirectoryClient:
    """
    Client for the credential directory REST API.

    Usage:
        with DirectoryClient(DirectoryConfig(url, token, ledger_id)) as directory:
            api_key = directory.get_api_key("alice@github")
            if api_key is None:
                api_key = directory.create_api_key("alice@github")
            else:
                api_key = directory.rotate_api_key(api_key.id)
    """

    def __init__(self, config: DirectoryConfig, session: Optional[requests.Session] = None):
        self.config = config
        self._owns_session = session is None
        self._session = session or requests.Session()

    def __enter__(self) -> 'DirectoryClient':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_session:
            self._session.close()

    def get_api_key(self, signer_id: str) -> Optional[ApiKey]:
        """
        Look up the API key registered for a signer ID.

        Returns:
            The first matching key, or None when the directory has none
        """
        url = f"{self.config.base_url}/api_keys/identity/{quote(signer_id, safe='')}"
        page = self._request("GET", url, 200)

        items = page.get("items") if isinstance(page, dict) else None
        if items is None:
            items = page if isinstance(page, list) else []
        if not isinstance(items, list):
            raise DirectoryError(
                f"GET {url}: unexpected response payload: items is not a list: {items!r}",
                method="GET",
                url=url
            )
        if not items:
            return None

        return self._api_key("GET", url, items[0])

    def create_api_key(self, signer_id: str) -> ApiKey:
        """Create a read-write API key named after the signer ID."""
        url = f"{self.config.base_url}/ledgers/{self.config.ledger_id}/api_keys"
        payload = {"name": signer_id, "read_only": False}
        return self._api_key("POST", url, self._request("POST", url, 201, payload))

    def rotate_api_key(self, key_id: str) -> ApiKey:
        """Invalidate the current secret of a key and issue a new one under the same ID."""
        url = (
            f"{self.config.base_url}/ledgers/{self.config.ledger_id}"
            f"/api_keys/{quote(key_id, safe='')}/rotate"
        )
        return self._api_key("PUT", url, self._request("PUT", url, 200))

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Authorization": f"Bearer {self.config.token}",
        }

    def _request(
        self,
        method: str,
        url: str,
        expected_status: int,
        payload: Optional[Dict[str, Any]] = None
    ) -> Any:
        try:
            response = self._session.request(
                method,
                url,
                headers=self._headers(),
                json=payload,
                timeout=self.config.timeout
            )
        except requests.RequestException as e:
            raise DirectoryError(
                f"error sending request {method} {url}: {e}",
                method=method,
                url=url,
                expected_status=expected_status
            ) from e

        body = response.text
        if response.status_code != expected_status:
            status = str(response.status_code)
            if response.reason:
                status = f"{status} {response.reason}"
            raise DirectoryError(
                f"{method} {url} error: expected response status {expected_status}, "
                f"got {status} with body {body}",
                method=method,
                url=url,
                expected_status=expected_status,
                status=response.status_code,
                body=body
            )

        try:
            return response.json()
        except ValueError as e:
            raise DirectoryError(
                f"error JSON-unmarshaling {method} {url} response body {body}: {e}",
                method=method,
                url=url,
                expected_status=expected_status,
                status=response.status_code,
                body=body
            ) from e

    def _api_key(self, method: str, url: str, data: Any) -> ApiKey:
        try:
            return ApiKey.from_dict(data)
        except ValueError as e:
            raise DirectoryError(
                f"{method} {url}: unexpected response payload: {e}",
                method=method,
                url=url
            ) from e
