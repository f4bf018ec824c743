"""HTTP client for the Resend transactional email API."""

from __future__ import annotations

import re

import httpx

_TAG_UNSAFE_CHARACTERS = re.compile(r"[^A-Za-z0-9_-]")


class EmailProviderError(RuntimeError):
    """Raised when the provider rejects a message or cannot be reached."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        retryable: bool = True,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class ResendClient:
    """Wrapper around the ``POST /emails`` endpoint."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.resend.com",
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key.strip():
            raise EmailProviderError("Resend API key cannot be empty.", retryable=False)
        self._api_key = api_key.strip()
        self._base_url = self._normalize_base_url(base_url)
        self._timeout_seconds = timeout_seconds
        self._transport = transport

    async def send_email(
        self,
        *,
        sender: str,
        to: str,
        subject: str,
        html: str,
        reply_to: str | None = None,
        tags: dict[str, str] | None = None,
        idempotency_key: str | None = None,
    ) -> str | None:
        """Send one message and return the provider message id."""

        url = self._endpoint("/emails")
        body: dict[str, object] = {
            "from": sender,
            "to": [to],
            "subject": subject,
            "html": html,
        }
        if reply_to:
            body["reply_to"] = reply_to
        if tags:
            body["tags"] = [
                {"name": self._tag_safe(name), "value": self._tag_safe(value)}
                for name, value in tags.items()
            ]
        headers = {"Authorization": f"Bearer {self._api_key}"}
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout_seconds,
                transport=self._transport,
            ) as http_client:
                response = await http_client.post(url, json=body, headers=headers)
        except httpx.HTTPError as exc:
            raise EmailProviderError(f"POST {url} failed: {exc}") from exc
        self._ensure_success(response)

        try:
            payload = response.json()
        except ValueError:
            return None
        if isinstance(payload, dict) and isinstance(payload.get("id"), str):
            return payload["id"]
        return None

    def _endpoint(self, path: str) -> str:
        return f"{self._base_url}{path}"

    def _ensure_success(self, response: httpx.Response) -> None:
        if response.is_success:
            return
        message = self._detail_from_response(response)
        status_code = response.status_code
        raise EmailProviderError(
            f"{response.request.method} {response.request.url} failed: {status_code} {message}",
            status_code=status_code,
            retryable=status_code == 429 or status_code >= 500,
        )

    def _detail_from_response(self, response: httpx.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            text = response.text.strip()
            return text or "<no response body>"

        if isinstance(payload, dict):
            for key in ("message", "detail"):
                detail = payload.get(key)
                if isinstance(detail, str):
                    return detail
            error = payload.get("error")
            if isinstance(error, dict) and isinstance(error.get("message"), str):
                return error["message"]
        return str(payload)

    def _normalize_base_url(self, base_url: str) -> str:
        normalized = base_url.strip().rstrip("/")
        if not normalized:
            raise EmailProviderError("Resend base URL cannot be empty.", retryable=False)
        return normalized

    def _tag_safe(self, value: str) -> str:
        return _TAG_UNSAFE_CHARACTERS.sub("_", value)[:256]


__all__ = ["EmailProviderError", "ResendClient"]
