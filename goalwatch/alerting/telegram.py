"""Telegram Bot API gateway (sendMessage only)."""

import json
import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """A message was not accepted by the gateway. Transient by default."""

    def __init__(self, message: str, status_code: int = 0, retry_after: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
        self.retry_after = retry_after


class NotificationGateway(ABC):
    """Outbound messaging contract: send formatted text to a destination."""

    @property
    @abstractmethod
    def configured(self) -> bool:
        """False when credentials or the default destination are missing."""
        pass

    @property
    @abstractmethod
    def default_chat_id(self) -> str:
        pass

    @abstractmethod
    async def send(self, chat_id: str, text: str) -> None:
        """Deliver one message. Raises GatewayError on failure."""
        pass

    async def close(self) -> None:
        pass


def mask_token(token: str) -> str:
    token = token.strip()
    if not token:
        return "none"
    if len(token) <= 8:
        return "*" * len(token)
    return f"{token[:4]}...{token[-4:]}"


class TelegramGateway(NotificationGateway):
    """Telegram sendMessage with Markdown parse mode and link previews disabled."""

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        api_base: str = "https://api.telegram.org",
        timeout: float = 10.0,
        parse_mode: str = "Markdown",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._bot_token = bot_token.strip()
        self._chat_id = chat_id.strip()
        self._masked = mask_token(self._bot_token)
        self.parse_mode = parse_mode
        self.client = httpx.AsyncClient(base_url=api_base, timeout=timeout, transport=transport)

        if self._bot_token:
            logger.info(f"[NOTIFY] Telegram bot initialized (token={self._masked})")
        else:
            logger.warning("[NOTIFY] Telegram bot token not configured")

    @property
    def configured(self) -> bool:
        return bool(self._bot_token and self._chat_id)

    @property
    def default_chat_id(self) -> str:
        return self._chat_id

    async def send(self, chat_id: str, text: str) -> None:
        if not self._bot_token:
            raise GatewayError("Telegram bot token not configured")

        payload = {
            "chat_id": chat_id,
            "text": text,
            "disable_web_page_preview": True,
        }
        if self.parse_mode:
            payload["parse_mode"] = self.parse_mode

        try:
            response = await self.client.post(f"/bot{self._bot_token}/sendMessage", json=payload)
        except httpx.TimeoutException as e:
            raise GatewayError(f"Timeout: {self._sanitize(str(e))}") from None
        except httpx.RequestError as e:
            raise GatewayError(f"{type(e).__name__}: {self._sanitize(str(e))}") from None

        body = {}
        try:
            parsed = response.json()
            if isinstance(parsed, dict):
                body = parsed
        except json.JSONDecodeError:
            body = {}

        if 200 <= response.status_code < 300 and body.get("ok", True):
            return

        retry_after = None
        parameters = body.get("parameters")
        if isinstance(parameters, dict) and isinstance(parameters.get("retry_after"), int):
            retry_after = parameters["retry_after"]

        description = body.get("description") if isinstance(body.get("description"), str) else None
        raise GatewayError(
            self._sanitize(description or f"http_{response.status_code}"),
            status_code=response.status_code,
            retry_after=retry_after,
        )

    def _sanitize(self, text: str) -> str:
        if not self._bot_token:
            return text
        return text.replace(self._bot_token, self._masked)

    async def close(self) -> None:
        await self.client.aclose()
