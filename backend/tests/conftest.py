from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import parse_qsl

import httpx
import pytest
from jose import jwt

from tsukumart.config import Settings
from tsukumart.errors import StorageError
from tsukumart.models.university import Department, NotGraduate, University, university_to_internal
from tsukumart.models.user import AccountService, LogInServiceAndId
from tsukumart.models_sqlalchemy import Store
from tsukumart.models_sqlalchemy.models import PendingEmailVerification
from tsukumart.services import build_services
from tsukumart.services.line_login import LineLoginClient
from tsukumart.services.line_notify import LineNotifyClient
from tsukumart.services.storage import new_image_id

FRONTEND = "https://front.test"


class FakeImageStorage:
    """In-memory stand-in for the Supabase bucket."""

    def __init__(self):
        self.blobs: dict[str, tuple[bytes, str]] = {}
        self.deleted: list[str] = []
        self.fail = False

    async def save(self, data: bytes, content_type: str) -> str:
        if self.fail:
            raise StorageError("bucket unavailable")
        image_id = new_image_id()
        self.blobs[image_id] = (data, content_type)
        return image_id

    async def save_data_url(self, image) -> str:
        return await self.save(image.data, image.mime_type)

    async def save_thumbnail(self, image) -> str:
        return await self.save(b"thumb:" + image.data, "image/jpeg")

    async def read(self, image_id: str) -> Optional[tuple[bytes, str]]:
        if self.fail:
            raise StorageError("bucket unavailable")
        return self.blobs.get(image_id)

    async def delete(self, image_id: str) -> None:
        self.deleted.append(image_id)
        self.blobs.pop(image_id, None)


class FakeLine:
    """Answers the LINE Login and LINE Notify endpoints through httpx.MockTransport."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.profile = {
            "sub": "U0001",
            "name": "LINE User",
            "picture": "https://profile.line-scdn.net/picture-0001",
        }
        self.audience = settings.LINE_LOG_IN_CLIENT_ID
        self.token_status = 200
        self.notify_status = 200
        self.notify_token = "issued-notify-token"
        self.sent: list[dict] = []

    def id_token(self) -> str:
        claims = {
            **self.profile,
            "iss": "https://access.line.me",
            "aud": self.audience,
            "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
        }
        return jwt.encode(claims, self.settings.LINE_LOG_IN_SECRET, algorithm="HS256")

    def handle(self, request: httpx.Request) -> httpx.Response:
        host, path = request.url.host, request.url.path
        if host == "api.line.me" and path == "/oauth2/v2.1/token":
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "invalid_grant"})
            return httpx.Response(200, json={"access_token": "line-access", "id_token": self.id_token()})
        if host == "profile.line-scdn.net":
            return httpx.Response(200, content=b"line-picture", headers={"content-type": "image/jpeg"})
        if host == "notify-bot.line.me" and path == "/oauth/token":
            return httpx.Response(200, json={"access_token": self.notify_token})
        if host == "notify-api.line.me" and path == "/api/notify":
            form = dict(parse_qsl(request.content.decode("utf-8")))
            form["token"] = request.headers["Authorization"].removeprefix("Bearer ")
            self.sent.append(form)
            return httpx.Response(self.notify_status, json={"status": self.notify_status})
        return httpx.Response(404)

    def messages_to(self, token: str) -> list[dict]:
        return [m for m in self.sent if m["token"] == token]


@pytest.fixture
def settings(tmp_path):
    return Settings(
        SECRET_KEY="test-secret-key",
        DATABASE_URL=f"sqlite:///{tmp_path / 'market.db'}",
        FRONTEND_URL=FRONTEND,
        LINE_LOG_IN_CLIENT_ID="1650000000",
        LINE_LOG_IN_SECRET="line-login-secret",
        LINE_NOTIFY_CLIENT_ID="notify-client",
        LINE_NOTIFY_SECRET="notify-secret",
    )


@pytest.fixture
def store(settings):
    store = Store(settings.DATABASE_URL)
    store.create_all()
    yield store
    store.dispose()


@pytest.fixture
def storage():
    return FakeImageStorage()


@pytest.fixture
def line_api(settings):
    return FakeLine(settings)


@pytest.fixture
def services(settings, store, storage, line_api):
    transport = httpx.MockTransport(line_api.handle)
    return build_services(
        settings,
        store=store,
        storage=storage,
        line_login=LineLoginClient(settings, transport=transport),
        line_notify=LineNotifyClient(settings, transport=transport),
    )


@pytest.fixture
def register_user(services):
    """Create a verified account and log it in; returns ``(user_id, access_token)``."""

    def _register(
        service_id: str,
        display_name: str = "Student",
        university: University = NotGraduate(department=Department.coins),
        notify_token: Optional[str] = None,
    ) -> tuple[str, str]:
        log_in = LogInServiceAndId(service=AccountService.line, service_id=service_id)
        school_and_department, graduate = university_to_internal(university)
        with services.store.session() as db:
            db.add(
                PendingEmailVerification(
                    log_in_service_and_id=log_in.to_string(),
                    display_name=display_name,
                    image_id=f"avatar-{service_id}",
                    school_and_department=school_and_department,
                    graduate=graduate,
                    email_address="s2010000@u.tsukuba.ac.jp",
                    email_verified=True,
                )
            )
        token = services.identity.resolve_or_create_user(log_in)
        user_id = services.identity.verify_access_token(token)
        if notify_token is not None:
            services.identity.save_notify_token(user_id, notify_token)
        return user_id, token

    return _register
