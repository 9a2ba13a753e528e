"""Client for the serverless functions that sit next to the directory API.

Email delivery, human verification, the bulk import worker and the photo refresher
all run as separate HTTP functions; this module only speaks their request/response
contract.
"""

from __future__ import annotations

from typing import Any

import httpx

from .logging_config import get_logger
from .settings import settings

logger = get_logger(__name__)

VERIFY_FUNCTION = "verify-recaptcha"
EMAIL_FUNCTION = "send-email"
BULK_IMPORT_FUNCTION = "bulk-import-restaurants"
PHOTO_REFRESH_FUNCTION = "refresh-restaurant-photos"


class FunctionError(RuntimeError):
    def __init__(self, function: str, reason: str) -> None:
        super().__init__(f"{function}: {reason}")
        self.function = function
        self.reason = reason


class FunctionsClient:
    """Thin async wrapper over one pooled httpx client. No retries."""

    def __init__(
        self,
        base_url: str | None,
        *,
        api_key: str | None = None,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or "").rstrip("/")
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
            headers["apikey"] = api_key
        self._client = httpx.AsyncClient(
            base_url=self.base_url or "http://functions.invalid",
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @property
    def configured(self) -> bool:
        return bool(self.base_url)

    async def invoke(self, name: str, payload: dict[str, Any]) -> dict[str, Any]:
        if not self.configured:
            raise FunctionError(name, "functions base URL is not configured")
        try:
            response = await self._client.post(f"/{name}", json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise FunctionError(name, f"HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise FunctionError(name, type(exc).__name__) from exc
        try:
            data = response.json()
        except ValueError as exc:
            raise FunctionError(name, "invalid JSON response") from exc
        if not isinstance(data, dict):
            raise FunctionError(name, "unexpected response shape")
        return data

    async def aclose(self) -> None:
        await self._client.aclose()


class HumanVerifier:
    """Checks challenge-widget tokens before any public write is accepted."""

    def __init__(self, functions: FunctionsClient) -> None:
        self._functions = functions

    async def verify(self, token: str | None) -> bool:
        if not token or not token.strip():
            return False
        if settings.RECAPTCHA_BYPASS:
            return True
        try:
            data = await self._functions.invoke(VERIFY_FUNCTION, {"token": token})
        except FunctionError as exc:
            logger.warning("recaptcha_verification_failed", reason=exc.reason)
            return False
        return data.get("success") is True


def create_functions_client(transport: httpx.AsyncBaseTransport | None = None) -> FunctionsClient:
    return FunctionsClient(
        settings.FUNCTIONS_BASE_URL,
        api_key=settings.FUNCTIONS_API_KEY,
        timeout=settings.FUNCTIONS_TIMEOUT_SECONDS,
        transport=transport,
    )
