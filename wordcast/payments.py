# Payment collaborator: sends weekly prize transfers and reports the sponsor
# wallet balance. The chain work is done by a relay service that holds the
# sponsor key; this module only speaks HTTP to it.

from __future__ import annotations
import logging
import re
from typing import Optional, Protocol

import httpx
from pydantic import BaseModel

from .config import PAYMENT_RELAY_KEY, PAYMENT_RELAY_URL, PAYMENT_TIMEOUT_SEC
from .errors import UpstreamFailure, UpstreamTimeout

logger = logging.getLogger(__name__)

_TX_HASH_RE = re.compile(r"0x[a-fA-F0-9]{64}")
_ADDRESS_RE = re.compile(r"0x[a-fA-F0-9]{40}")


def is_valid_tx_hash(value: Optional[str]) -> bool:
    return isinstance(value, str) and bool(_TX_HASH_RE.fullmatch(value))


def is_valid_address(value: Optional[str]) -> bool:
    return isinstance(value, str) and bool(_ADDRESS_RE.fullmatch(value))


def _json_object(response: httpx.Response) -> Optional[dict]:
    try:
        body = response.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


class TransferResult(BaseModel):
    success: bool
    tx_hash: Optional[str] = None
    error: Optional[str] = None


class PaymentGateway(Protocol):
    def submit_transfer(self, to_address: str, amount_usd: int, memo: str) -> TransferResult: ...

    def get_sponsor_balance(self) -> str: ...


class DisabledPaymentGateway:
    """Used when no relay is configured; every transfer fails cleanly."""

    def submit_transfer(self, to_address: str, amount_usd: int, memo: str) -> TransferResult:
        return TransferResult(success=False, error="Payment relay not configured")

    def get_sponsor_balance(self) -> str:
        raise UpstreamFailure("Payment relay not configured")


class RelayPaymentGateway:
    def __init__(self, base_url: str, api_key: str = "", timeout: float = PAYMENT_TIMEOUT_SEC,
                 transport: Optional[httpx.BaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.Client:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return httpx.Client(base_url=self.base_url, headers=headers, timeout=self.timeout,
                            transport=self._transport)

    def submit_transfer(self, to_address: str, amount_usd: int, memo: str) -> TransferResult:
        if not is_valid_address(to_address):
            return TransferResult(success=False, error=f"Invalid wallet address: {to_address}")
        payload = {"to": to_address, "amountUsd": amount_usd, "memo": memo}
        try:
            with self._client() as client:
                response = client.post("/transfers", json=payload)
        except httpx.TimeoutException:
            logger.warning("transfer to %s timed out after %ss", to_address, self.timeout)
            return TransferResult(success=False, error="Payment relay timed out")
        except httpx.HTTPError as e:
            logger.error("transfer to %s failed: %s", to_address, e)
            return TransferResult(success=False, error=str(e) or "Payment relay unreachable")

        if response.status_code >= 300:
            return TransferResult(success=False, error=f"Relay error {response.status_code}: {response.text[:200]}")
        body = _json_object(response)
        if body is None:
            logger.error("transfer to %s: relay returned invalid JSON", to_address)
            return TransferResult(success=False, error="Relay returned invalid JSON")
        tx_hash = body.get("txHash")
        if not is_valid_tx_hash(tx_hash):
            return TransferResult(success=False, error=str(body.get("error") or "Relay returned no transaction hash"))
        logger.info("reward sent: $%s to %s tx=%s memo=%s", amount_usd, to_address, tx_hash, memo)
        return TransferResult(success=True, tx_hash=tx_hash)

    def get_sponsor_balance(self) -> str:
        try:
            with self._client() as client:
                response = client.get("/balance")
        except httpx.TimeoutException as e:
            raise UpstreamTimeout("Payment relay timed out") from e
        except httpx.HTTPError as e:
            raise UpstreamFailure(f"Payment relay unreachable: {e}") from e
        if response.status_code >= 300:
            raise UpstreamFailure(f"Relay error {response.status_code}")
        body = _json_object(response)
        if body is None:
            raise UpstreamFailure("Relay returned invalid JSON")
        return str(body.get("usdcBalance", "0"))


def gateway_from_config() -> PaymentGateway:
    if PAYMENT_RELAY_URL:
        return RelayPaymentGateway(PAYMENT_RELAY_URL, PAYMENT_RELAY_KEY)
    return DisabledPaymentGateway()
