# spectrum_core/integrations/zoho.py
"""
Zoho Books API client.

Per-lab OAuth credentials live on Laboratory. Access tokens are cached in
the Django cache; a 401 drops the cached token and retries once.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx
from django.conf import settings
from django.core.cache import cache

logger = logging.getLogger(__name__)

ACCOUNTS_URLS = {
    "https://www.zohoapis.com": "https://accounts.zoho.com",
    "https://www.zohoapis.eu": "https://accounts.zoho.eu",
    "https://www.zohoapis.in": "https://accounts.zoho.in",
    "https://www.zohoapis.com.au": "https://accounts.zoho.com.au",
    "https://www.zohoapis.jp": "https://accounts.zoho.jp",
    "https://www.zohoapis.ca": "https://accounts.zoho.ca",
}
DEFAULT_ACCOUNTS_URL = "https://accounts.zoho.com"

CONTACTS_PER_PAGE = 200


class ZohoError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ZohoNotConfigured(ZohoError):
    pass


def accounts_url(api_domain: str) -> str:
    return ACCOUNTS_URLS.get((api_domain or "").rstrip("/"), DEFAULT_ACCOUNTS_URL)


def token_cache_key(laboratory) -> str:
    return f"zoho:access-token:{laboratory.pk}"


def clear_cached_token(laboratory) -> None:
    cache.delete(token_cache_key(laboratory))


class ZohoClient:
    """
    Synchronous Zoho Books client bound to one laboratory.

    `transport` is passed straight to httpx.Client (tests use MockTransport).
    """

    def __init__(self, laboratory, *, transport: Optional[httpx.BaseTransport] = None, timeout=None):
        if not laboratory.zoho_configured:
            raise ZohoNotConfigured(
                "Zoho Books is not configured. Please set up credentials in Settings."
            )
        self.laboratory = laboratory
        self.api_domain = laboratory.zoho_api_domain.rstrip("/")
        self._client = httpx.Client(
            transport=transport,
            timeout=timeout or getattr(settings, "ZOHO_HTTP_TIMEOUT", 30.0),
        )

    # ------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------
    def close(self) -> None:
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # ------------------------------------------------------------
    # auth
    # ------------------------------------------------------------
    def access_token(self) -> str:
        key = token_cache_key(self.laboratory)
        token = cache.get(key)
        if token:
            return token

        lab = self.laboratory
        try:
            resp = self._client.post(
                f"{accounts_url(self.api_domain)}/oauth/v2/token",
                data={
                    "refresh_token": lab.zoho_refresh_token,
                    "client_id": lab.zoho_client_id,
                    "client_secret": lab.zoho_client_secret,
                    "grant_type": "refresh_token",
                },
            )
        except httpx.HTTPError as exc:
            raise ZohoError(f"Zoho auth request failed: {exc}") from exc

        if resp.is_error:
            raise ZohoError(f"Zoho auth failed ({resp.status_code}): {resp.text}", resp.status_code)

        data = resp.json()
        if data.get("error"):
            raise ZohoError(f"Zoho auth error: {data['error']}")

        token = data["access_token"]
        cache.set(key, token, timeout=getattr(settings, "ZOHO_TOKEN_TTL_SECONDS", 3000))
        return token

    # ------------------------------------------------------------
    # requests
    # ------------------------------------------------------------
    def _send(self, method: str, path: str, params: Dict[str, Any], json: Any) -> httpx.Response:
        url = f"{self.api_domain}/books/v3/{path.lstrip('/')}"
        query = {"organization_id": self.laboratory.zoho_org_id, **(params or {})}
        headers = {"Authorization": f"Zoho-oauthtoken {self.access_token()}"}
        try:
            return self._client.request(method, url, params=query, json=json, headers=headers)
        except httpx.HTTPError as exc:
            raise ZohoError(f"Zoho API request failed: {exc}") from exc

    def request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None, json: Any = None) -> dict:
        resp = self._send(method, path, params or {}, json)

        # Token may have expired server-side before our cache entry did
        if resp.status_code == 401:
            clear_cached_token(self.laboratory)
            resp = self._send(method, path, params or {}, json)

        if resp.is_error:
            logger.warning(
                "Zoho %s %s failed for lab %s: %s",
                method,
                path,
                self.laboratory.pk,
                resp.status_code,
            )
            raise ZohoError(f"Zoho API error ({resp.status_code}): {resp.text}", resp.status_code)

        return resp.json()

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> dict:
        return self.request("GET", path, params=params)

    def post(self, path: str, json: Any = None, params: Optional[Dict[str, Any]] = None) -> dict:
        return self.request("POST", path, params=params, json=json)

    # ------------------------------------------------------------
    # endpoints
    # ------------------------------------------------------------
    def organizations(self) -> List[dict]:
        return self.get("organizations").get("organizations") or []

    def fetch_all_contacts(self) -> List[dict]:
        contacts: List[dict] = []
        page = 1
        while True:
            data = self.get(
                "contacts",
                {"contact_type": "customer", "per_page": CONTACTS_PER_PAGE, "page": page},
            )
            contacts.extend(data.get("contacts") or [])

            page_context = data.get("page_context") or {}
            if not page_context.get("has_more_page"):
                break
            page += 1
        return contacts

    def create_invoice(self, payload: dict) -> dict:
        data = self.post("invoices", json=payload)
        return data.get("invoice") or {}
