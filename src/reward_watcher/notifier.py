import logging

import httpx

from .config import TelegramConfig
from .exceptions import NotificationError

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Sends alert messages to a Telegram chat through the Bot API.

    Delivery is best-effort: one attempt per message, no retry and no queue.
    A failure is logged and reported through the return value only.
    """

    API_BASE_URL: str = "https://api.telegram.org"
    REQUEST_TIMEOUT: float = 10.0

    def __init__(
        self,
        config: TelegramConfig,
        transport: httpx.AsyncBaseTransport | None = None
    ) -> None:
        """Initialize the notifier.

        Args:
            config: Bot token, chat id and dry-run flag
            transport: Optional httpx transport (used to stub the API in tests)
        """
        self.config: TelegramConfig = config
        self.transport: httpx.AsyncBaseTransport | None = transport
        self.sent: int = 0
        self.failed: int = 0

    @property
    def send_message_url(self) -> str:
        return f"{self.API_BASE_URL}/bot{self.config.bot_token}/sendMessage"

    async def _post(self, text: str) -> None:
        """Post one message to the sendMessage endpoint.

        Raises:
            NotificationError: On transport errors or a non-2xx status
        """
        payload: dict[str, str] = {"chat_id": self.config.chat_id, "text": text}
        try:
            async with httpx.AsyncClient(transport=self.transport) as client:
                response: httpx.Response = await client.post(
                    self.send_message_url, json=payload, timeout=self.REQUEST_TIMEOUT
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise NotificationError(f"Telegram API returned HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            # The request URL embeds the bot token, so only the error type is reported
            raise NotificationError(f"Telegram request failed: {type(e).__name__}") from e

    async def send(self, message: str) -> bool:
        """Send a message to the configured chat.

        Args:
            message: Alert text

        Returns:
            True if the API accepted the message, False otherwise
        """
        if self.config.dry_run:
            logger.info(f"[DRY RUN] Telegram message: {message}")
            self.sent += 1
            return True

        try:
            await self._post(message)
        except NotificationError as e:
            self.failed += 1
            logger.error(f"Failed to send Telegram alert: {e}")
            return False

        self.sent += 1
        logger.debug("Telegram alert delivered")
        return True
