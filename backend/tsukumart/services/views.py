"""Assembly of response DTOs from database rows.

Every read builds its complete response here, inside the session that loaded
the rows. Products refer to users only through snapshots, so the object graph
is finite.
"""

from typing import Iterable, List

from sqlalchemy.orm import Session

from tsukumart.errors import NotFound
from tsukumart.models.product import (
    Category,
    Condition,
    DraftProductView,
    ProductCommentView,
    ProductStatus,
    ProductView,
    UserSummary,
)
from tsukumart.models.trade import SellerOrBuyer, TradeCommentView, TradeStatus, TradeView
from tsukumart.models.user import UserPrivateView, UserView
from tsukumart.models_sqlalchemy.models import (
    DeletedProduct,
    DraftProduct,
    Product,
    ProductComment,
    Trade,
    TradeComment,
    User,
    UserPrivate,
    as_utc,
)


def user_summary(user: User) -> UserSummary:
    return UserSummary(id=user.id, display_name=user.display_name, image_id=user.image_id)


def product_view(db: Session, product: Product) -> ProductView:
    comments = (
        db.query(ProductComment)
        .filter(ProductComment.product_id == product.id)
        .order_by(ProductComment.created_at)
        .all()
    )
    return ProductView(
        id=product.id,
        name=product.name,
        price=product.price,
        description=product.description,
        condition=Condition(product.condition),
        category=Category(product.category),
        thumbnail_image_id=product.thumbnail_image_id,
        image_ids=list(product.image_ids or []),
        liked_count=product.liked_count,
        viewed_count=product.viewed_count,
        status=ProductStatus(product.status),
        seller=UserSummary(
            id=product.seller_id,
            display_name=product.seller_display_name,
            image_id=product.seller_image_id,
        ),
        comments=[
            ProductCommentView(
                comment_id=c.id,
                body=c.body,
                speaker=UserSummary(
                    id=c.speaker_id,
                    display_name=c.speaker_display_name,
                    image_id=c.speaker_image_id,
                ),
                created_at=as_utc(c.created_at),
            )
            for c in comments
        ],
        created_at=as_utc(product.created_at),
        update_at=as_utc(product.update_at),
    )


def products_by_ids(db: Session, ids: Iterable[str]) -> List[ProductView]:
    """Views in the order of ``ids``; ids of deleted products are skipped."""
    ids = list(ids or [])
    if not ids:
        return []
    rows = {p.id: p for p in db.query(Product).filter(Product.id.in_(ids)).all()}
    return [product_view(db, rows[i]) for i in ids if i in rows]


def load_product_view(db: Session, product_id: str) -> ProductView:
    """Live product, or its archived snapshot when it has been deleted."""
    product = db.get(Product, product_id)
    if product is not None:
        return product_view(db, product)
    archived = db.get(DeletedProduct, product_id)
    if archived is not None:
        return ProductView.model_validate(archived.snapshot)
    raise NotFound(f"Product {product_id} not found")


def draft_view(draft: DraftProduct) -> DraftProductView:
    return DraftProductView(
        draft_id=draft.id,
        name=draft.name,
        price=draft.price,
        description=draft.description,
        condition=Condition(draft.condition) if draft.condition else None,
        category=Category(draft.category) if draft.category else None,
        thumbnail_image_id=draft.thumbnail_image_id,
        image_ids=list(draft.image_ids or []),
        created_at=as_utc(draft.created_at),
        update_at=as_utc(draft.update_at),
    )


def drafts_of(db: Session, user_id: str) -> List[DraftProductView]:
    drafts = (
        db.query(DraftProduct)
        .filter(DraftProduct.user_id == user_id)
        .order_by(DraftProduct.update_at)
        .all()
    )
    return [draft_view(d) for d in drafts]


def trade_view(db: Session, trade: Trade) -> TradeView:
    buyer = db.get(User, trade.buyer_user_id)
    if buyer is None:
        raise NotFound(f"Buyer of trade {trade.id} not found")
    comments = (
        db.query(TradeComment)
        .filter(TradeComment.trade_id == trade.id)
        .order_by(TradeComment.created_at)
        .all()
    )
    return TradeView(
        id=trade.id,
        product=load_product_view(db, trade.product_id),
        buyer=user_summary(buyer),
        status=TradeStatus(trade.status),
        comments=[
            TradeCommentView(
                comment_id=c.id,
                body=c.body,
                speaker=SellerOrBuyer(c.speaker),
                created_at=as_utc(c.created_at),
            )
            for c in comments
        ],
        created_at=as_utc(trade.created_at),
        update_at=as_utc(trade.update_at),
    )


def trades_by_ids(db: Session, ids: Iterable[str]) -> List[TradeView]:
    ids = list(ids or [])
    if not ids:
        return []
    rows = {t.id: t for t in db.query(Trade).filter(Trade.id.in_(ids)).all()}
    return [trade_view(db, rows[i]) for i in ids if i in rows]


def user_view(db: Session, user: User) -> UserView:
    return UserView(
        id=user.id,
        display_name=user.display_name,
        image_id=user.image_id,
        introduction=user.introduction,
        university=user.university,
        created_at=as_utc(user.created_at),
        sold_products=products_by_ids(db, user.sold_products),
    )


def user_private_view(db: Session, user: User, private: UserPrivate) -> UserPrivateView:
    public = user_view(db, user)
    return UserPrivateView(
        **public.model_dump(exclude={"university", "sold_products"}),
        university=public.university,
        sold_products=public.sold_products,
        email_address=private.email_address,
        has_notify_token=private.notify_token is not None,
        liked_products=products_by_ids(db, private.liked_product),
        history_view_products=products_by_ids(db, private.history_view_product),
        commented_products=products_by_ids(db, private.commented_product),
        bought_products=products_by_ids(db, private.bought_product),
        trading=trades_by_ids(db, private.trading),
        traded=trades_by_ids(db, private.traded),
        drafts=drafts_of(db, user.id),
    )
