from typing import Optional

from tsukumart.errors import NotFound, UserNotFound, ValidationError
from tsukumart.models.product import DataUrl
from tsukumart.models.university import University
from tsukumart.models.user import UserPrivateView, UserView
from tsukumart.models_sqlalchemy import Store
from tsukumart.models_sqlalchemy.models import User, UserPrivate
from tsukumart.services.storage import ImageStorage
from tsukumart.services.views import user_private_view, user_view
from tsukumart.utils.logger import logger


class ProfileService:
    def __init__(self, store: Store, storage: ImageStorage):
        self.store = store
        self.storage = storage

    def get_user(self, user_id: str) -> UserView:
        with self.store.session() as db:
            user = db.get(User, user_id)
            if user is None:
                raise NotFound(f"User {user_id} not found")
            return user_view(db, user)

    def get_user_private(self, user_id: str) -> UserPrivateView:
        with self.store.session() as db:
            user = db.get(User, user_id)
            private = db.get(UserPrivate, user_id)
            if user is None or private is None:
                raise UserNotFound()
            return user_private_view(db, user, private)

    async def set_profile(
        self,
        user_id: str,
        display_name: str,
        introduction: str,
        university: University,
        image: Optional[DataUrl] = None,
    ) -> UserPrivateView:
        """Update the profile; a new image replaces the reference, the old blob stays."""
        if not display_name or not display_name.strip():
            raise ValidationError("Display name must not be empty")

        image_id = await self.storage.save_data_url(image) if image is not None else None

        with self.store.session() as db:
            user = db.get(User, user_id)
            private = db.get(UserPrivate, user_id)
            if user is None or private is None:
                raise UserNotFound()
            user.display_name = display_name
            user.introduction = introduction
            user.university = university
            if image_id is not None:
                user.image_id = image_id
            db.flush()
            view = user_private_view(db, user, private)
        logger.info(f"Profile updated: {user_id}")
        return view
