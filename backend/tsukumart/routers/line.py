from typing import Optional
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, BackgroundTasks, Query, Request
from fastapi.responses import PlainTextResponse, RedirectResponse

from tsukumart.errors import EmailNotVerified, InvalidToken, StorageError, UserNotFound
from tsukumart.models.user import AccountService, LogInServiceAndId
from tsukumart.services import Services, line_notify
from tsukumart.utils.logger import logger

router = APIRouter(tags=["line"])


def _services(request: Request) -> Services:
    return request.app.state.services


@router.get("/logInReceiver/line")
async def line_log_in_receiver(
    request: Request,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
):
    """LINE Login redirect target.

    Known accounts are sent to the frontend with an access token in the URL
    fragment. Unknown accounts get their LINE name and picture stored as
    pending sign-up data and are sent to the sign-up form.
    """
    services = _services(request)
    frontend = services.settings.FRONTEND_URL

    if not code or not state:
        return RedirectResponse(frontend)
    if services.identity.consume_log_in_state(state) is None:
        logger.warning("LINE login callback with unknown or expired state")
        return PlainTextResponse("LINE LogIn Error: unknown state", status_code=400)

    try:
        profile = await services.line_login.fetch_profile(code)
    except (httpx.HTTPError, InvalidToken) as e:
        logger.error(f"LINE login failed: {type(e).__name__}: {e}")
        return RedirectResponse(f"{frontend}/?reason=line_login_failed")

    log_in = LogInServiceAndId(service=AccountService.line, service_id=profile.sub)
    try:
        access_token = services.identity.resolve_or_create_user(log_in)
        logger.info(f"LINE login succeeded for {log_in.to_string()}")
        return RedirectResponse(f"{frontend}/#{urlencode({'accessToken': access_token})}")
    except (UserNotFound, EmailNotVerified) as e:
        logger.info(f"LINE login of an unregistered account ({e.code}): {log_in.to_string()}")

    try:
        picture, content_type = await services.line_login.download_picture(profile.picture)
        image_id = await services.storage.save(picture, content_type)
    except (httpx.HTTPError, StorageError) as e:
        logger.error(f"Could not store LINE profile picture: {type(e).__name__}: {e}")
        return RedirectResponse(f"{frontend}/?reason=sign_up_failed")

    services.identity.save_pending_sign_up(log_in, profile.name, image_id)
    fragment = urlencode(
        {
            "sendEmailToken": services.identity.create_send_email_token(log_in),
            "name": profile.name,
            "imageId": image_id,
        }
    )
    return RedirectResponse(f"{frontend}/signup#{fragment}")


@router.get("/notifyCallBack")
async def notify_call_back(
    request: Request,
    background_tasks: BackgroundTasks,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
):
    """LINE Notify redirect target; stores the delivery token for the user."""
    services = _services(request)
    frontend = services.settings.FRONTEND_URL

    if not code or not state:
        return RedirectResponse(frontend)
    user_id = services.identity.consume_notify_state(state)
    if user_id is None:
        logger.warning("LINE Notify callback with unknown or expired state")
        return PlainTextResponse("LINE Notify Error: unknown state", status_code=400)

    try:
        token = await services.line_notify.exchange_code(code)
    except httpx.HTTPError as e:
        logger.error(f"LINE Notify token exchange failed: {type(e).__name__}: {e}")
        return RedirectResponse(f"{frontend}/?reason=notify_failed")

    services.identity.save_notify_token(user_id, token)
    background_tasks.add_task(line_notify.deliver, services.line_notify, token, line_notify.REGISTERED_MESSAGE)
    return RedirectResponse(f"{frontend}/?notify=registered")
