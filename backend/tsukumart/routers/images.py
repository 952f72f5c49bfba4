from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import Response

from tsukumart.errors import StorageError
from tsukumart.utils.logger import logger

router = APIRouter(tags=["images"])

# Image ids are never reused, so responses can be cached forever.
CACHE_CONTROL = "public, max-age=31536000"


@router.get("/image/{image_id}")
async def get_image(image_id: str, request: Request):
    storage = request.app.state.services.storage
    try:
        stored = await storage.read(image_id)
    except StorageError as e:
        logger.error(f"Image {image_id} could not be read: {e}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Image storage unavailable")
    if stored is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found")

    data, content_type = stored
    return Response(content=data, media_type=content_type, headers={"cache-control": CACHE_CONTROL})
