import re
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from tsukumart.config import Settings
from tsukumart.errors import (
    EmailNotVerified,
    InvalidEmail,
    InvalidToken,
    NotFound,
    StorageError,
    TokenSuperseded,
    UserNotFound,
)
from tsukumart.models.product import DataUrl
from tsukumart.models.university import University, university_from_internal, university_to_internal
from tsukumart.models.user import AccountService, LogInServiceAndId
from tsukumart.models_sqlalchemy import Store
from tsukumart.models_sqlalchemy.models import (
    LogInState,
    NotifyState,
    PendingEmailVerification,
    PendingSignUp,
    User,
    UserPrivate,
    as_utc,
    new_id,
    utcnow,
)
from tsukumart.services.storage import ImageStorage
from tsukumart.utils.logger import logger

ACCESS_TOKEN = "access"
SEND_EMAIL_TOKEN = "send_email"
VERIFY_EMAIL_TOKEN = "verify_email"


def new_access_token_marker() -> str:
    return secrets.token_urlsafe(11)


class IdentityService:
    """Binds external login identities to users and issues their tokens.

    Access tokens carry ``{sub: user id, jti: marker}``. The marker of the
    newest token is stored on UserPrivate; issuing a token replaces it, which
    revokes every token issued before.
    """

    def __init__(self, store: Store, storage: ImageStorage, settings: Settings):
        self.store = store
        self.storage = storage
        self.settings = settings

    def _encode(self, claims: dict, secret: str, expires_in: timedelta) -> str:
        to_encode = claims.copy()
        to_encode.update({"exp": datetime.now(timezone.utc) + expires_in})
        return jwt.encode(to_encode, secret, algorithm=self.settings.ALGORITHM)

    def _decode(self, token: str, secret: str, token_type: str) -> dict:
        try:
            payload = jwt.decode(token, secret, algorithms=[self.settings.ALGORITHM])
        except JWTError as e:
            logger.warning(f"JWT validation error ({token_type}): {e}")
            raise InvalidToken()
        if payload.get("typ") != token_type or not isinstance(payload.get("sub"), str):
            logger.warning(f"JWT has unexpected shape for {token_type}")
            raise InvalidToken()
        return payload

    def create_access_token(self, user_id: str, marker: str) -> str:
        return self._encode(
            {"sub": user_id, "jti": marker, "typ": ACCESS_TOKEN},
            self.settings.secret_key,
            timedelta(minutes=self.settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        )

    def resolve_or_create_user(self, log_in: LogInServiceAndId) -> str:
        """Issue an access token for the account, creating the user on first verified login.

        Raises UserNotFound when the account never registered and
        EmailNotVerified when it registered but did not confirm its email yet.
        """
        key = log_in.to_string()
        marker = new_access_token_marker()

        with self.store.session() as db:
            private = db.query(UserPrivate).filter(UserPrivate.log_in_service_and_id == key).one_or_none()
            if private is not None:
                private.last_access_token_id = marker
                user_id = private.user_id
            else:
                pending = db.get(PendingEmailVerification, key)
                if pending is None:
                    raise UserNotFound()
                if not pending.email_verified:
                    raise EmailNotVerified()

                # Rejects a pending record without a department or graduate school
                university_from_internal(pending.school_and_department, pending.graduate)
                user = User(
                    id=new_id(),
                    display_name=pending.display_name,
                    image_id=pending.image_id,
                    introduction="",
                    school_and_department=pending.school_and_department,
                    graduate=pending.graduate,
                    sold_products=[],
                    created_at=utcnow(),
                )
                db.add(user)
                db.flush()
                db.add(
                    UserPrivate(
                        user_id=user.id,
                        log_in_service_and_id=key,
                        last_access_token_id=marker,
                        email_address=pending.email_address,
                        bought_product=[],
                        trading=[],
                        traded=[],
                        liked_product=[],
                        history_view_product=[],
                        commented_product=[],
                    )
                )
                db.delete(pending)
                user_id = user.id
                logger.info(f"New user created from verified sign up: {user_id}")

        return self.create_access_token(user_id, marker)

    def verify_access_token(self, token: Optional[str]) -> str:
        """Return the user id of a valid, current access token."""
        if not token:
            raise InvalidToken()
        payload = self._decode(token, self.settings.secret_key, ACCESS_TOKEN)
        user_id = payload["sub"]

        with self.store.session() as db:
            private = db.get(UserPrivate, user_id)
            if private is None:
                logger.warning(f"Token subject has no user record: {user_id}")
                raise InvalidToken()
            if private.last_access_token_id != payload.get("jti"):
                raise TokenSuperseded()
        return user_id

    def create_send_email_token(self, log_in: LogInServiceAndId) -> str:
        return self._encode(
            {"sub": log_in.to_string(), "typ": SEND_EMAIL_TOKEN},
            self.settings.send_email_token_secret,
            timedelta(minutes=self.settings.SEND_EMAIL_TOKEN_EXPIRE_MINUTES),
        )

    def verify_send_email_token(self, token: str) -> LogInServiceAndId:
        payload = self._decode(token, self.settings.send_email_token_secret, SEND_EMAIL_TOKEN)
        return LogInServiceAndId.from_string(payload["sub"])

    def create_email_verification_token(self, log_in: LogInServiceAndId) -> str:
        return self._encode(
            {"sub": log_in.to_string(), "typ": VERIFY_EMAIL_TOKEN},
            self.settings.send_email_token_secret,
            timedelta(minutes=self.settings.EMAIL_VERIFICATION_TOKEN_EXPIRE_MINUTES),
        )

    def save_pending_sign_up(self, log_in: LogInServiceAndId, name: str, image_id: str) -> None:
        key = log_in.to_string()
        with self.store.session() as db:
            pending = db.get(PendingSignUp, key)
            if pending is None:
                db.add(PendingSignUp(log_in_service_and_id=key, name=name, image_id=image_id))
            else:
                pending.name = name
                pending.image_id = image_id
                pending.created_at = utcnow()

    async def register_sign_up_data(
        self,
        send_email_token: str,
        display_name: str,
        image: Optional[DataUrl],
        university: University,
        email: str,
    ) -> str:
        """Store the sign-up form and return the email verification token.

        The account becomes a user on its next login once the token has been
        confirmed through ``verify_email``.
        """
        log_in = self.verify_send_email_token(send_email_token)
        key = log_in.to_string()
        if not re.match(self.settings.UNIVERSITY_EMAIL_PATTERN, email or ""):
            raise InvalidEmail()
        school_and_department, graduate = university_to_internal(university)

        with self.store.session() as db:
            pending = db.get(PendingSignUp, key)
            if pending is None:
                raise NotFound("Sign up data not found; log in again")
            old_image_id = pending.image_id

        new_image_id = await self.storage.save_data_url(image) if image is not None else None

        with self.store.session() as db:
            pending = db.get(PendingSignUp, key)
            if pending is None:
                raise NotFound("Sign up data not found; log in again")
            db.delete(pending)
            db.merge(
                PendingEmailVerification(
                    log_in_service_and_id=key,
                    display_name=display_name,
                    image_id=new_image_id or old_image_id,
                    school_and_department=school_and_department,
                    graduate=graduate,
                    email_address=email,
                    email_verified=False,
                    created_at=utcnow(),
                )
            )

        if new_image_id is not None:
            try:
                await self.storage.delete(old_image_id)
            except StorageError as e:
                logger.warning(f"Old sign up image {old_image_id} was not deleted: {e}")

        logger.info(f"Sign up data registered, waiting for email verification: {key}")
        return self.create_email_verification_token(log_in)

    def verify_email(self, token: str) -> LogInServiceAndId:
        payload = self._decode(token, self.settings.send_email_token_secret, VERIFY_EMAIL_TOKEN)
        log_in = LogInServiceAndId.from_string(payload["sub"])
        with self.store.session() as db:
            pending = db.get(PendingEmailVerification, log_in.to_string())
            if pending is None:
                raise NotFound("Sign up data not found")
            pending.email_verified = True
        logger.info(f"Email verified: {log_in.to_string()}")
        return log_in

    def _is_fresh(self, created_at: datetime) -> bool:
        age = utcnow() - as_utc(created_at)
        return age <= timedelta(minutes=self.settings.STATE_EXPIRE_MINUTES)

    def generate_log_in_state(self, service: AccountService) -> str:
        state = secrets.token_urlsafe(24)
        with self.store.session() as db:
            db.add(LogInState(state=state, service=service.value))
        return state

    def consume_log_in_state(self, state: str) -> Optional[AccountService]:
        """Delete the state and return its service; None if unknown or expired."""
        with self.store.session() as db:
            record = db.get(LogInState, state)
            if record is None:
                return None
            db.delete(record)
            if not self._is_fresh(record.created_at):
                return None
            return AccountService(record.service)

    def generate_notify_state(self, user_id: str) -> str:
        state = secrets.token_urlsafe(24)
        with self.store.session() as db:
            db.add(NotifyState(state=state, user_id=user_id))
        return state

    def consume_notify_state(self, state: str) -> Optional[str]:
        """Delete the state and return the user id it was issued for."""
        with self.store.session() as db:
            record = db.get(NotifyState, state)
            if record is None:
                return None
            db.delete(record)
            if not self._is_fresh(record.created_at):
                return None
            return record.user_id

    def save_notify_token(self, user_id: str, token: str) -> None:
        with self.store.session() as db:
            private = db.get(UserPrivate, user_id)
            if private is None:
                raise UserNotFound()
            private.notify_token = token
        logger.info(f"Notify token registered for user {user_id}")
