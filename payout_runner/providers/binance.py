"""
Binance wallet + Binance Pay gateway.

Two signing schemes are involved:
  - Wallet API (spot / funding / transfer): HMAC-SHA256 of the query string,
    API key in ``X-MBX-APIKEY``.
  - Binance Pay (batch payout / query): HMAC-SHA512 of
    ``timestamp\\nnonce\\nbody\\n``, sent in ``BinancePay-*`` headers.

The body that is signed is the exact body that is sent.
"""

import hashlib
import hmac
import json
import logging
import secrets
import time
from decimal import Decimal
from typing import Any, Optional
from urllib.parse import urlencode

import httpx

from payout_runner.config import settings
from payout_runner.engine.retry import ProviderError, error_for_status
from payout_runner.models.enums import BatchStatus, RecipientStatus, coerce_status
from payout_runner.models.records import Credentials
from payout_runner.providers.base import (
    BatchRequest,
    BatchStatusResponse,
    BatchSubmission,
    LedgerGateway,
    RecipientOutcome,
    TransferResult,
)

logger = logging.getLogger("payout_runner.providers.binance")

PAYOUT_ENDPOINT = "/binancepay/openapi/payout/transfer"
PAYOUT_QUERY_ENDPOINT = "/binancepay/openapi/payout/query"


def _now_ms() -> int:
    return int(time.time() * 1000)


def gen_nonce() -> str:
    return secrets.token_hex(32)


def sign_query(query_string: str, api_secret: str) -> str:
    return hmac.new(api_secret.encode(), query_string.encode(), hashlib.sha256).hexdigest()


def sign_pay_payload(payload: str, timestamp: str, nonce: str, api_secret: str) -> str:
    message = f"{timestamp}\n{nonce}\n{payload}\n"
    return hmac.new(api_secret.encode(), message.encode(), hashlib.sha512).hexdigest()


def build_batch_payload(request: BatchRequest, timestamp_ms: int) -> dict[str, Any]:
    return {
        "requestId": f"BATCH_{timestamp_ms}",
        "bizScene": "DIRECT_TRANSFER",
        "batchName": request.name,
        "currency": request.currency,
        "totalAmount": str(request.total_amount),
        "totalNumber": request.total_number,
        "transferDetailList": [
            {
                "merchantSendId": item.merchant_send_id,
                "transferAmount": str(item.amount),
                "transferMethod": "FUNDING_WALLET",
                "receiver": {"identityType": "EMAIL", "identity": item.email},
            }
            for item in request.items
        ],
    }


class BinanceGateway(LedgerGateway):
    def __init__(
        self,
        api_url: Optional[str] = None,
        pay_api_url: Optional[str] = None,
        timeout_s: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_url = (api_url or settings.binance_api_url).rstrip("/")
        self._pay_api_url = (pay_api_url or settings.binance_pay_api_url).rstrip("/")
        self._client = httpx.AsyncClient(
            timeout=timeout_s if timeout_s is not None else settings.http_timeout_s,
            transport=transport,
        )

    @property
    def name(self) -> str:
        return "binance"

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get_spot_balance(self, currency: str, credentials: Credentials) -> str:
        body = await self._signed("GET", "/api/v3/account", {}, credentials)
        for balance in body.get("balances", []):
            if balance.get("asset") == currency:
                return str(balance.get("free") or "0")
        return "0"

    async def get_funding_balance(self, currency: str, credentials: Credentials) -> str:
        body = await self._signed("POST", "/sapi/v1/asset/get-funding-asset", {"asset": currency}, credentials)
        for balance in body or []:
            if balance.get("asset") == currency:
                return str(balance.get("free") or "0")
        return "0"

    async def transfer(self, currency: str, amount: Decimal, credentials: Credentials) -> Optional[TransferResult]:
        params = {"type": "MAIN_FUNDING", "asset": currency, "amount": str(amount)}
        body = await self._signed("POST", "/sapi/v1/asset/transfer", params, credentials)
        tran_id = body.get("tranId") if isinstance(body, dict) else None
        if tran_id is None:
            return None
        return TransferResult(transaction_id=str(tran_id))

    async def submit_batch(self, request: BatchRequest, credentials: Credentials) -> BatchSubmission:
        payload = build_batch_payload(request, _now_ms())
        body = await self._pay(PAYOUT_ENDPOINT, payload, credentials)

        if body.get("status") != "SUCCESS":
            return BatchSubmission(
                ok=False,
                error_code=body.get("code"),
                message=body.get("errorMessage") or "",
            )
        data = body.get("data") or {}
        return BatchSubmission(ok=True, request_id=data.get("requestId") or payload["requestId"])

    async def query_batch_status(self, request_id: str, credentials: Credentials) -> BatchStatusResponse:
        body = await self._pay(PAYOUT_QUERY_ENDPOINT, {"requestId": request_id, "detailStatus": "ALL"}, credentials)

        if body.get("status") != "SUCCESS":
            return BatchStatusResponse(ok=False, error_code=body.get("code"), message=body.get("errorMessage") or "")

        data = body.get("data") or {}
        raw_status = data.get("batchStatus")
        if not raw_status:
            raise ProviderError(f"Batch status payload without batchStatus: {str(body)[:200]}", retriable=True)

        batch_status = coerce_status(BatchStatus, raw_status)
        if not isinstance(batch_status, BatchStatus):
            logger.warning("Batch %s reported unrecognised status %s, treating it as final", request_id, raw_status)

        try:
            outcomes = [
                RecipientOutcome(
                    merchant_send_id=d["merchantSendId"],
                    status=coerce_status(RecipientStatus, d["status"]),
                    order_id=d.get("orderId"),
                )
                for d in data.get("transferDetailList") or []
            ]
        except KeyError as e:
            raise ProviderError(f"Unexpected batch status payload: missing {e}", retriable=True) from e

        for outcome in outcomes:
            if not isinstance(outcome.status, RecipientStatus):
                logger.warning("Recipient %s reported unrecognised status %s", outcome.merchant_send_id, outcome.status)
        return BatchStatusResponse(ok=True, batch_status=batch_status, outcomes=outcomes)

    async def _signed(self, method: str, path: str, params: dict[str, Any], credentials: Credentials) -> Any:
        query = urlencode({**params, "timestamp": _now_ms()})
        signature = sign_query(query, credentials.secret_key.get_secret_value())
        url = f"{self._api_url}{path}?{query}&signature={signature}"

        try:
            r = await self._client.request(method, url, headers={"X-MBX-APIKEY": credentials.api_key})
        except httpx.HTTPError as e:
            raise ProviderError(f"{method} {path} failed: {e}") from e
        logger.debug("%s %s -> HTTP %d", method, path, r.status_code)

        payload = _json_or_none(r)
        if r.status_code >= 400:
            detail = payload.get("msg") if isinstance(payload, dict) else r.text[:200]
            code = str(payload.get("code")) if isinstance(payload, dict) and "code" in payload else None
            raise error_for_status(r.status_code, f"{method} {path} -> HTTP {r.status_code}: {detail}", code=code)
        if payload is None:
            raise ProviderError(f"{method} {path} returned a non-JSON body: {r.text[:200]}")
        return payload

    async def _pay(self, endpoint: str, payload: dict[str, Any], credentials: Credentials) -> dict[str, Any]:
        body = json.dumps(payload, separators=(",", ":"))
        timestamp = str(_now_ms())
        nonce = gen_nonce()
        headers = {
            "content-type": "application/json",
            "BinancePay-Timestamp": timestamp,
            "BinancePay-Nonce": nonce,
            "BinancePay-Certificate-SN": credentials.pay_api_key,
            "BinancePay-Signature": sign_pay_payload(
                body, timestamp, nonce, credentials.pay_secret_key.get_secret_value()
            ),
        }

        try:
            r = await self._client.post(f"{self._pay_api_url}{endpoint}", content=body, headers=headers)
        except httpx.HTTPError as e:
            raise ProviderError(f"POST {endpoint} failed: {e}") from e
        logger.debug("POST %s -> HTTP %d", endpoint, r.status_code)

        data = _json_or_none(r)
        # Binance Pay reports business failures as {"status": "FAIL", ...}, sometimes with a 4xx
        if isinstance(data, dict) and data.get("status") in ("SUCCESS", "FAIL"):
            return data
        status_code = r.status_code if r.status_code >= 400 else 502
        raise error_for_status(status_code, f"POST {endpoint} -> HTTP {r.status_code}: {r.text[:200]}")


def _json_or_none(r: httpx.Response) -> Any:
    try:
        return r.json()
    except ValueError:
        return None

