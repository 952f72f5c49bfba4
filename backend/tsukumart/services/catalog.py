import asyncio
from typing import Iterable, List, NamedTuple, Optional

from sqlalchemy import update

from tsukumart.config import Settings
from tsukumart.errors import (
    ConcurrentUpdate,
    EmptyComment,
    Forbidden,
    ImageListEmpty,
    NotFound,
    ProductNotAvailable,
    StorageError,
    UserNotFound,
    ValidationError,
)
from tsukumart.models.product import (
    CATEGORIES_BY_GROUP,
    Category,
    CategoryGroup,
    Condition,
    DataUrl,
    DraftProductView,
    ProductStatus,
    ProductView,
)
from tsukumart.models.university import DEPARTMENTS_BY_SCHOOL, Department, Graduate, School
from tsukumart.models_sqlalchemy import Store
from tsukumart.models_sqlalchemy.models import (
    DeletedProduct,
    DraftProduct,
    Product,
    ProductComment,
    User,
    UserPrivate,
    new_id,
    utcnow,
)
from tsukumart.services import line_notify
from tsukumart.services.storage import ImageStorage
from tsukumart.services.views import draft_view, drafts_of, product_view
from tsukumart.utils.logger import logger


class ImagePlan(NamedTuple):
    kept: List[str]
    first_removed: bool


def plan_image_update(
    image_ids: List[str],
    delete_index: Iterable[int],
    added_count: int,
    allow_empty: bool = False,
) -> ImagePlan:
    """Drop the images at ``delete_index`` (0-based, out of range ignored).

    Kept images keep their order and new images are appended after them.
    Raises ImageListEmpty when nothing would be left, unless ``allow_empty``.
    """
    removed = set(delete_index or [])
    kept = [image_id for i, image_id in enumerate(image_ids) if i not in removed]
    if not allow_empty and not kept and added_count == 0:
        raise ImageListEmpty()
    return ImagePlan(kept=kept, first_removed=bool(image_ids) and 0 in removed)


def normalize_search_text(text: str) -> str:
    """Fold katakana to hiragana and upper case to lower case."""
    return "".join(chr(ord(ch) - 0x60) if "ァ" <= ch <= "ン" else ch for ch in text).lower()


def _check_price(price: Optional[int]) -> None:
    if price is not None and price < 0:
        raise ValidationError("Price must not be negative")


class CatalogService:
    def __init__(self, store: Store, storage: ImageStorage, notifier, settings: Settings):
        self.store = store
        self.storage = storage
        self.notifier = notifier
        self.settings = settings

    # Reads

    def get_product(self, product_id: str) -> ProductView:
        with self.store.session() as db:
            product = db.get(Product, product_id)
            if product is None:
                raise NotFound(f"Product {product_id} not found")
            return product_view(db, product)

    def _list(self, *order_by, where=None) -> List[ProductView]:
        with self.store.session() as db:
            query = db.query(Product)
            if where is not None:
                query = query.filter(where)
            if order_by:
                query = query.order_by(*order_by)
            return [product_view(db, p) for p in query.all()]

    def get_all_products(self) -> List[ProductView]:
        return self._list()

    def get_recent_products(self) -> List[ProductView]:
        return self._list(Product.created_at.desc())

    def get_recommend_products(self) -> List[ProductView]:
        return self._list(Product.liked_count.desc(), Product.created_at.desc())

    def get_free_products(self) -> List[ProductView]:
        return self._list(Product.created_at.desc(), where=Product.price == 0)

    def get_draft_products(self, user_id: str) -> List[DraftProductView]:
        with self.store.session() as db:
            return drafts_of(db, user_id)

    def search(
        self,
        query: str,
        category: Optional[Category] = None,
        category_group: Optional[CategoryGroup] = None,
        condition: Optional[Condition] = None,
        school: Optional[School] = None,
        department: Optional[Department] = None,
        graduate: Optional[Graduate] = None,
    ) -> List[ProductView]:
        """Products matching every given filter.

        The seller's university narrows the candidates first (school, then
        department, then graduate school; the first one given wins), then the
        category, the condition and finally the normalized text of name and
        description.
        """
        if category is not None and category_group is not None:
            raise ValidationError("category and categoryGroup cannot be combined")

        needle = normalize_search_text(query or "")
        with self.store.session() as db:
            products = db.query(Product)

            sellers = None
            if school is not None:
                departments = [d.value for d in DEPARTMENTS_BY_SCHOOL[school]]
                sellers = db.query(User.id).filter(User.school_and_department.in_(departments))
            elif department is not None:
                sellers = db.query(User.id).filter(User.school_and_department == department.value)
            elif graduate is not None:
                sellers = db.query(User.id).filter(User.graduate == graduate.value)
            if sellers is not None:
                products = products.filter(Product.seller_id.in_(sellers.scalar_subquery()))

            if category is not None:
                products = products.filter(Product.category == category.value)
            elif category_group is not None:
                products = products.filter(
                    Product.category.in_([c.value for c in CATEGORIES_BY_GROUP[category_group]])
                )

            if condition is not None:
                products = products.filter(Product.condition == condition.value)

            result = []
            for product in products.order_by(Product.created_at.desc()).all():
                haystack = normalize_search_text(f"{product.name}\n{product.description}")
                if needle in haystack:
                    result.append(product_view(db, product))
            return result

    # Listing lifecycle

    async def _upload_images(
        self,
        plan: ImagePlan,
        current_thumbnail: Optional[str],
        add_images: List[DataUrl],
    ) -> tuple[List[str], Optional[str]]:
        """Upload new images and, when the first image changed, a new thumbnail."""
        new_ids = list(await asyncio.gather(*(self.storage.save_data_url(i) for i in add_images)))
        image_ids = plan.kept + new_ids
        if not image_ids:
            return image_ids, None

        if current_thumbnail is not None and not plan.first_removed:
            return image_ids, current_thumbnail

        if plan.kept:
            stored = await self.storage.read(plan.kept[0])
            if stored is None:
                raise StorageError(f"Image {plan.kept[0]} is missing")
            first = DataUrl(mime_type=stored[1], data=stored[0])
        else:
            first = add_images[0]
        return image_ids, await self.storage.save_thumbnail(first)

    async def sell_product(
        self,
        user_id: str,
        name: str,
        price: int,
        description: str,
        condition: Condition,
        category: Category,
        images: List[DataUrl],
    ) -> ProductView:
        if not images:
            raise ImageListEmpty()
        _check_price(price)

        thumbnail_id, *image_ids = await asyncio.gather(
            self.storage.save_thumbnail(images[0]),
            *(self.storage.save_data_url(i) for i in images),
        )

        with self.store.session() as db:
            user = db.get(User, user_id)
            if user is None:
                raise UserNotFound()
            now = utcnow()
            product = Product(
                id=new_id(),
                name=name,
                price=price,
                description=description,
                condition=condition.value,
                category=category.value,
                thumbnail_image_id=thumbnail_id,
                image_ids=list(image_ids),
                liked_count=0,
                viewed_count=0,
                status=ProductStatus.selling.value,
                seller_id=user.id,
                seller_display_name=user.display_name,
                seller_image_id=user.image_id,
                created_at=now,
                update_at=now,
            )
            db.add(product)
            user.sold_products = list(user.sold_products or []) + [product.id]
            db.flush()
            logger.info(f"Product listed: {product.id} by {user_id}")
            return product_view(db, product)

    def _editable_product(self, db, user_id: str, product_id: str) -> Product:
        product = db.get(Product, product_id)
        if product is None:
            raise NotFound(f"Product {product_id} not found")
        if product.seller_id != user_id:
            raise Forbidden("Only the seller can change this product")
        if product.status != ProductStatus.selling.value:
            raise ProductNotAvailable("Only products on sale can be changed")
        return product

    async def update_product(
        self,
        user_id: str,
        product_id: str,
        name: str,
        price: int,
        description: str,
        condition: Condition,
        category: Category,
        add_images: Optional[List[DataUrl]] = None,
        delete_image_index: Optional[List[int]] = None,
    ) -> ProductView:
        add_images = add_images or []
        _check_price(price)
        with self.store.session() as db:
            product = self._editable_product(db, user_id, product_id)
            plan = plan_image_update(product.image_ids or [], delete_image_index or [], len(add_images))
            seen_version = product.version
            current_thumbnail = product.thumbnail_image_id

        image_ids, thumbnail_id = await self._upload_images(plan, current_thumbnail, add_images)

        with self.store.session() as db:
            product = self._editable_product(db, user_id, product_id)
            # Image indexes refer to the list the plan was made from
            if product.version != seen_version:
                raise ConcurrentUpdate()
            product.name = name
            product.price = price
            product.description = description
            product.condition = condition.value
            product.category = category.value
            product.image_ids = image_ids
            product.thumbnail_image_id = thumbnail_id
            product.update_at = utcnow()
            db.flush()
            return product_view(db, product)

    def delete_product(self, user_id: str, product_id: str) -> bool:
        """Archive a snapshot of the product, then remove the live record."""
        with self.store.session() as db:
            product = self._editable_product(db, user_id, product_id)
            snapshot = product_view(db, product).model_dump(mode="json")
            db.add(DeletedProduct(id=product.id, snapshot=snapshot, deleted_at=utcnow()))
            seller = db.get(User, product.seller_id)
            if seller is not None:
                seller.sold_products = [p for p in (seller.sold_products or []) if p != product.id]
            db.delete(product)
        logger.info(f"Product deleted and archived: {product_id}")
        return True

    # Reactions

    def _private(self, db, user_id: str) -> UserPrivate:
        private = db.get(UserPrivate, user_id)
        if private is None:
            raise UserNotFound()
        return private

    def _require_product(self, db, product_id: str) -> Product:
        product = db.get(Product, product_id)
        if product is None:
            raise NotFound(f"Product {product_id} not found")
        return product

    def _increment(self, db, product_id: str, column, amount: int) -> None:
        db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values({column: column + amount})
            .execution_options(synchronize_session=False)
        )

    def like_product(self, user_id: str, product_id: str) -> bool:
        with self.store.session() as db:
            self._require_product(db, product_id)
            if self._private(db, user_id).add_id("liked_product", product_id):
                self._increment(db, product_id, Product.liked_count, 1)
        return True

    def unlike_product(self, user_id: str, product_id: str) -> bool:
        with self.store.session() as db:
            self._require_product(db, product_id)
            if self._private(db, user_id).remove_id("liked_product", product_id):
                self._increment(db, product_id, Product.liked_count, -1)
        return True

    def mark_product_in_history(self, user_id: str, product_id: str) -> ProductView:
        with self.store.session() as db:
            product = self._require_product(db, product_id)
            self._private(db, user_id).add_id("history_view_product", product_id)
            # Every view counts, including repeated ones
            self._increment(db, product_id, Product.viewed_count, 1)
            db.flush()
            db.refresh(product)
            return product_view(db, product)

    async def add_product_comment(self, user_id: str, product_id: str, body: str) -> ProductView:
        if not body or not body.strip():
            raise EmptyComment()

        with self.store.session() as db:
            product = self._require_product(db, product_id)
            speaker = db.get(User, user_id)
            if speaker is None:
                raise UserNotFound()
            now = utcnow()
            db.add(
                ProductComment(
                    id=new_id(),
                    product_id=product.id,
                    body=body,
                    speaker_id=speaker.id,
                    speaker_display_name=speaker.display_name,
                    speaker_image_id=speaker.image_id,
                    created_at=now,
                )
            )
            product.update_at = now
            self._private(db, user_id).add_id("commented_product", product_id)
            db.flush()
            view = product_view(db, product)

            seller_token = None
            if product.seller_id != user_id:
                seller_private = db.get(UserPrivate, product.seller_id)
                seller_token = seller_private.notify_token if seller_private else None

        self.notifier.schedule(
            seller_token,
            line_notify.product_comment_message(
                self.settings.FRONTEND_URL, view.name, view.id, view.comments[-1].speaker.display_name, body
            ),
        )
        return view

    # Drafts

    def _own_draft(self, db, user_id: str, draft_id: str) -> DraftProduct:
        draft = db.get(DraftProduct, draft_id)
        if draft is None or draft.user_id != user_id:
            raise NotFound(f"Draft {draft_id} not found")
        return draft

    async def add_draft_product(
        self,
        user_id: str,
        name: str,
        price: Optional[int],
        description: str,
        condition: Optional[Condition],
        category: Optional[Category],
        images: Optional[List[DataUrl]] = None,
    ) -> DraftProductView:
        images = images or []
        _check_price(price)
        plan = plan_image_update([], [], len(images), allow_empty=True)
        image_ids, thumbnail_id = await self._upload_images(plan, None, images)

        with self.store.session() as db:
            if db.get(User, user_id) is None:
                raise UserNotFound()
            now = utcnow()
            draft = DraftProduct(
                id=new_id(),
                user_id=user_id,
                name=name,
                price=price,
                description=description,
                condition=condition.value if condition else None,
                category=category.value if category else None,
                thumbnail_image_id=thumbnail_id,
                image_ids=image_ids,
                created_at=now,
                update_at=now,
            )
            db.add(draft)
            db.flush()
            return draft_view(draft)

    async def update_draft_product(
        self,
        user_id: str,
        draft_id: str,
        name: str,
        price: Optional[int],
        description: str,
        condition: Optional[Condition],
        category: Optional[Category],
        delete_image_index: Optional[List[int]] = None,
        add_images: Optional[List[DataUrl]] = None,
    ) -> List[DraftProductView]:
        add_images = add_images or []
        _check_price(price)
        with self.store.session() as db:
            draft = self._own_draft(db, user_id, draft_id)
            plan = plan_image_update(
                draft.image_ids or [], delete_image_index or [], len(add_images), allow_empty=True
            )
            current_thumbnail = draft.thumbnail_image_id

        image_ids, thumbnail_id = await self._upload_images(plan, current_thumbnail, add_images)

        with self.store.session() as db:
            draft = self._own_draft(db, user_id, draft_id)
            draft.name = name
            draft.price = price
            draft.description = description
            draft.condition = condition.value if condition else None
            draft.category = category.value if category else None
            draft.image_ids = image_ids
            draft.thumbnail_image_id = thumbnail_id
            draft.update_at = utcnow()
            db.flush()
            return drafts_of(db, user_id)

    def delete_draft_product(self, user_id: str, draft_id: str) -> List[DraftProductView]:
        with self.store.session() as db:
            db.delete(self._own_draft(db, user_id, draft_id))
            db.flush()
            return drafts_of(db, user_id)
