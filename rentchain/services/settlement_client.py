import uuid
from dataclasses import dataclass

import requests

from rentchain.core.config import settings
from rentchain.core.errors import SettlementError


@dataclass
class SettlementConfig:
    base_url: str           # e.g. https://chain-gateway.internal/api
    api_key: str = ""       # sent as Bearer token when set
    timeout: int = 20
    sandbox: bool = False   # return a fake tx hash instead of calling out


class SettlementClient:
    """Talks to the escrow contract gateway that releases a booking's funds."""

    def __init__(self, cfg: SettlementConfig):
        self.cfg = cfg

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.cfg.api_key:
            headers["Authorization"] = f"Bearer {self.cfg.api_key}"
        return headers

    def request(self, method: str, path: str, payload: dict | None = None) -> dict:
        url = f"{self.cfg.base_url.rstrip('/')}{path}"
        try:
            r = requests.request(method=method.upper(), url=url, json=payload or {}, headers=self._headers(), timeout=self.cfg.timeout)
        except requests.RequestException as e:
            raise SettlementError(f"settlement gateway unreachable: {e}") from e
        try:
            data = r.json() if r.text else {}
        except ValueError:
            data = {"raw": r.text}
        if r.status_code >= 400:
            raise SettlementError(f"settlement gateway {r.status_code}: {data}", status=r.status_code)
        return data

    def complete_booking(self, booking_id: str) -> str:
        """Release escrowed rent to the host and the deposit back to the tenant. Returns the tx hash."""
        if self.cfg.sandbox:
            return "0x" + uuid.uuid5(uuid.NAMESPACE_URL, f"rentchain:{booking_id}").hex * 2
        data = self.request("POST", f"/bookings/{booking_id}/complete", {"bookingId": booking_id})
        tx = data.get("transactionHash") or data.get("txHash") or ""
        if not tx:
            raise SettlementError(f"settlement gateway returned no transaction hash: {data}")
        return tx


def get_settlement_client() -> SettlementClient:
    return SettlementClient(SettlementConfig(
        base_url=settings.SETTLEMENT_API_URL,
        api_key=settings.SETTLEMENT_API_KEY,
        timeout=settings.SETTLEMENT_TIMEOUT_SECONDS,
        sandbox=settings.SETTLEMENT_SANDBOX,
    ))
