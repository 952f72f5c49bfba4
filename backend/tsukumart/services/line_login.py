from typing import Optional
from urllib.parse import urlencode

import httpx
from jose import JWTError, jwt
from pydantic import BaseModel

from tsukumart.config import Settings
from tsukumart.errors import InvalidToken
from tsukumart.utils.logger import logger

AUTHORIZE_URL = "https://access.line.me/oauth2/v2.1/authorize"
TOKEN_URL = "https://api.line.me/oauth2/v2.1/token"
ISSUER = "https://access.line.me"


class LineProfile(BaseModel):
    sub: str
    name: str
    picture: str


class LineLoginClient:
    """LINE Login (OpenID Connect) for the /logInReceiver/line callback."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=httpx.Timeout(30.0, connect=10.0), transport=self.transport)

    def authorize_url(self, state: str) -> str:
        params = {
            "response_type": "code",
            "client_id": self.settings.LINE_LOG_IN_CLIENT_ID or "",
            "redirect_uri": self.settings.LINE_LOG_IN_REDIRECT_URI,
            "scope": "profile openid",
            "state": state,
        }
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    async def fetch_profile(self, code: str) -> LineProfile:
        """Exchange the authorization code and verify the returned id token.

        Raises httpx.HTTPError when the exchange fails and InvalidToken when the
        id token does not verify.
        """
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.settings.LINE_LOG_IN_REDIRECT_URI,
            "client_id": self.settings.LINE_LOG_IN_CLIENT_ID or "",
            "client_secret": self.settings.LINE_LOG_IN_SECRET or "",
        }
        async with self._client() as client:
            resp = await client.post(TOKEN_URL, data=data)
        resp.raise_for_status()

        id_token = resp.json().get("id_token")
        if not id_token:
            raise InvalidToken("LINE token response has no id_token")
        return self.verify_id_token(id_token)

    def verify_id_token(self, id_token: str) -> LineProfile:
        try:
            claims = jwt.decode(
                id_token,
                self.settings.LINE_LOG_IN_SECRET or "",
                algorithms=["HS256"],
                audience=self.settings.LINE_LOG_IN_CLIENT_ID,
                issuer=ISSUER,
            )
        except JWTError as e:
            logger.warning(f"LINE id token rejected: {e}")
            raise InvalidToken()

        for key in ("sub", "name", "picture"):
            if not isinstance(claims.get(key), str):
                logger.warning(f"LINE id token is missing the {key} claim")
                raise InvalidToken()
        return LineProfile(sub=claims["sub"], name=claims["name"], picture=claims["picture"])

    async def download_picture(self, url: str) -> tuple[bytes, str]:
        async with self._client() as client:
            resp = await client.get(url, follow_redirects=True)
        resp.raise_for_status()
        return resp.content, resp.headers.get("content-type", "image/jpeg")
