import asyncio
from typing import Optional
from urllib.parse import urlencode

import httpx

from tsukumart.config import Settings
from tsukumart.utils.logger import logger, mask_token

AUTHORIZE_URL = "https://notify-bot.line.me/oauth/authorize"
TOKEN_URL = "https://notify-bot.line.me/oauth/token"
NOTIFY_URL = "https://notify-api.line.me/api/notify"

# LINE basic sticker set
STICKER_PACKAGE_ID = "2"
STICKER_ID = "171"


class LineNotifyClient:
    """LINE Notify: authorization redirect, code exchange and message delivery."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.transport = transport
        self._deliveries: set = set()

    def _client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(self.settings.NOTIFY_TIMEOUT_SECONDS, connect=5.0)
        return httpx.AsyncClient(timeout=timeout, transport=self.transport)

    def authorize_url(self, state: str) -> str:
        params = {
            "response_type": "code",
            "client_id": self.settings.LINE_NOTIFY_CLIENT_ID or "",
            "redirect_uri": self.settings.LINE_NOTIFY_REDIRECT_URI,
            "scope": "notify",
            "state": state,
        }
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> str:
        """Trade an authorization code for a delivery token.

        Raises httpx.HTTPError when LINE rejects the code.
        """
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.settings.LINE_NOTIFY_REDIRECT_URI,
            "client_id": self.settings.LINE_NOTIFY_CLIENT_ID or "",
            "client_secret": self.settings.LINE_NOTIFY_SECRET or "",
        }
        async with self._client() as client:
            resp = await client.post(TOKEN_URL, data=data)
        resp.raise_for_status()
        token = resp.json().get("access_token")
        if not token:
            raise httpx.HTTPStatusError("LINE Notify returned no access_token", request=resp.request, response=resp)
        return token

    async def send_message(self, token: str, message: str, sticker: bool = False) -> None:
        data = {"message": message}
        if sticker:
            data["stickerPackageId"] = STICKER_PACKAGE_ID
            data["stickerId"] = STICKER_ID
        async with self._client() as client:
            resp = await client.post(
                NOTIFY_URL,
                data=data,
                headers={"Authorization": f"Bearer {token}"},
            )
        resp.raise_for_status()

    def schedule(self, token: Optional[str], message: str, sticker: bool = False) -> Optional[asyncio.Task]:
        """Queue a best-effort delivery on the running loop and return without waiting."""
        if not token:
            return None
        task = asyncio.create_task(deliver(self, token, message, sticker=sticker))
        self._deliveries.add(task)
        task.add_done_callback(self._deliveries.discard)
        return task

    async def drain(self) -> None:
        """Wait until every queued delivery has finished."""
        while self._deliveries:
            await asyncio.gather(*self._deliveries)


async def deliver(notifier, token: Optional[str], message: str, sticker: bool = False) -> bool:
    """Send a notification if the user registered a token.

    Delivery is best-effort: failures are logged and reported as False, never raised.
    """
    if not token:
        return False
    try:
        await notifier.send_message(token, message, sticker=sticker)
        return True
    except Exception as e:
        logger.warning(f"Notification delivery failed (token={mask_token(token)}): {type(e).__name__}: {e}")
        return False


def start_trade_message(frontend_url: str, product_name: str, trade_id: str) -> str:
    return f"「{product_name}」の取引が開始されました。\n{frontend_url}/trade/{trade_id}"


def cancel_trade_message(frontend_url: str, product_name: str, trade_id: str) -> str:
    return f"「{product_name}」の取引がキャンセルされました。\n{frontend_url}/trade/{trade_id}"


def trade_comment_message(frontend_url: str, product_name: str, trade_id: str, body: str) -> str:
    return f"「{product_name}」の取引にメッセージが届きました。\n{body}\n{frontend_url}/trade/{trade_id}"


def product_comment_message(
    frontend_url: str, product_name: str, product_id: str, speaker_name: str, body: str
) -> str:
    return f"「{product_name}」に{speaker_name}さんがコメントしました。\n{body}\n{frontend_url}/product/{product_id}"


REGISTERED_MESSAGE = "つくマートの通知を受け取るように設定しました。"
