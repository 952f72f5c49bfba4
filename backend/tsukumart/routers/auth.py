from fastapi import APIRouter, Query, Request
from fastapi.responses import RedirectResponse

from tsukumart.errors import InvalidToken, NotFound, ValidationError
from tsukumart.utils.logger import logger

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/verify-email")
async def verify_email(request: Request, token: str = Query(...)):
    """Confirm the address given in registerSignUpData.

    The account becomes a user on its next LINE login.
    """
    services = request.app.state.services
    frontend = services.settings.FRONTEND_URL
    try:
        services.identity.verify_email(token)
    except (InvalidToken, NotFound, ValidationError) as e:
        logger.warning(f"Email verification failed: {e.code}")
        return RedirectResponse(f"{frontend}/?reason=email_verification_failed")
    return RedirectResponse(f"{frontend}/?emailVerified=true")
