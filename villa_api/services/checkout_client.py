import logging
from dataclasses import dataclass

import requests

logger = logging.getLogger(__name__)


@dataclass
class CheckoutApiConfig:
    base_url: str           # e.g. https://api.valarvillas.com/api/v1
    timeout: int = 20


class CheckoutApiError(RuntimeError):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class CheckoutApiClient:
    """HTTP client for the public checkout endpoints, used by the booking dialog."""

    def __init__(self, cfg: CheckoutApiConfig, session: requests.Session | None = None):
        self.cfg = cfg
        self._http = session or requests.Session()

    def request(self, method: str, path: str, payload: dict | None = None) -> dict:
        url = f"{self.cfg.base_url.rstrip('/')}{path}"
        try:
            r = self._http.request(method=method.upper(), url=url, json=payload, timeout=self.cfg.timeout)
        except requests.RequestException as e:
            raise CheckoutApiError(f"Could not reach the booking service: {e}") from e
        try:
            data = r.json() if r.text else {}
        except ValueError:
            data = {"raw": r.text}
        if r.status_code >= 400:
            detail = data.get("detail") if isinstance(data, dict) else None
            raise CheckoutApiError(str(detail or f"Booking service error {r.status_code}"), status_code=r.status_code)
        return data

    def create_session(self, payload: dict) -> dict:
        return self.request("POST", "/public/checkout/sessions", payload)

    def get_session_status(self, session_id: str) -> dict:
        return self.request("GET", f"/public/checkout/sessions/{session_id}")
