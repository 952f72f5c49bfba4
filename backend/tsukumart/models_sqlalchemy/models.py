from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, ForeignKey, Index, JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
import uuid

from . import Base
from tsukumart.models.university import University, university_from_internal, university_to_internal

JsonList = JSON().with_variant(JSONB(), "postgresql")


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    display_name = Column(String(50), nullable=False)
    image_id = Column(String(64), nullable=False)
    introduction = Column(Text, nullable=False, default="")
    # Stored halves of the University sum type, see models.university
    school_and_department = Column(String(32), nullable=True)
    graduate = Column(String(32), nullable=True)
    sold_products = Column(JsonList, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def university(self) -> University:
        return university_from_internal(self.school_and_department, self.graduate)

    @university.setter
    def university(self, value: University) -> None:
        self.school_and_department, self.graduate = university_to_internal(value)


class UserPrivate(Base):
    __tablename__ = "user_private"

    user_id = Column(String(36), ForeignKey("users.id"), primary_key=True)
    log_in_service_and_id = Column(String(255), nullable=False, unique=True, index=True)
    # Marker of the only access token that is currently accepted
    last_access_token_id = Column(String(32), nullable=False)
    email_address = Column(String(255), nullable=False)
    _notify_token = Column("notify_token", Text, nullable=True)

    bought_product = Column(JsonList, nullable=False, default=list)
    trading = Column(JsonList, nullable=False, default=list)
    traded = Column(JsonList, nullable=False, default=list)
    liked_product = Column(JsonList, nullable=False, default=list)
    history_view_product = Column(JsonList, nullable=False, default=list)
    commented_product = Column(JsonList, nullable=False, default=list)

    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def notify_token(self) -> str | None:
        from tsukumart.utils import crypto

        raw = self._notify_token
        if raw is None:
            return None
        return crypto.decrypt(raw)

    @notify_token.setter
    def notify_token(self, value: str | None) -> None:
        from tsukumart.utils import crypto

        if value is None or value == "":
            self._notify_token = None
        else:
            self._notify_token = crypto.encrypt(value)

    # JSON columns only notice reassignment, so lists are always replaced.
    def add_id(self, field: str, value: str) -> bool:
        current = list(getattr(self, field) or [])
        if value in current:
            return False
        setattr(self, field, current + [value])
        return True

    def remove_id(self, field: str, value: str) -> bool:
        current = list(getattr(self, field) or [])
        if value not in current:
            return False
        setattr(self, field, [v for v in current if v != value])
        return True


class PendingSignUp(Base):
    """Identity-provider profile of an unknown account, waiting for the sign-up form."""

    __tablename__ = "pending_sign_ups"

    log_in_service_and_id = Column(String(255), primary_key=True)
    name = Column(String(255), nullable=False)
    image_id = Column(String(64), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class PendingEmailVerification(Base):
    """Completed sign-up form, promoted to a User once the email is verified."""

    __tablename__ = "pending_email_verifications"

    log_in_service_and_id = Column(String(255), primary_key=True)
    display_name = Column(String(50), nullable=False)
    image_id = Column(String(64), nullable=False)
    school_and_department = Column(String(32), nullable=True)
    graduate = Column(String(32), nullable=True)
    email_address = Column(String(255), nullable=False)
    email_verified = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class LogInState(Base):
    __tablename__ = "log_in_states"

    state = Column(String(64), primary_key=True)
    service = Column(String(32), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class NotifyState(Base):
    __tablename__ = "notify_states"

    state = Column(String(64), primary_key=True)
    user_id = Column(String(36), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class Product(Base):
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    price = Column(Integer, nullable=False)
    description = Column(Text, nullable=False, default="")
    condition = Column(String(32), nullable=False)
    category = Column(String(64), nullable=False, index=True)
    thumbnail_image_id = Column(String(64), nullable=False)
    image_ids = Column(JsonList, nullable=False, default=list)
    liked_count = Column(Integer, nullable=False, default=0)
    viewed_count = Column(Integer, nullable=False, default=0)
    status = Column(String(16), nullable=False, default="selling")

    # Seller snapshot taken when the product is listed; never re-synced
    seller_id = Column(String(36), nullable=False, index=True)
    seller_display_name = Column(String(50), nullable=False)
    seller_image_id = Column(String(64), nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    update_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    version = Column(Integer, nullable=False)

    comments = relationship(
        "ProductComment",
        order_by="ProductComment.created_at",
        cascade="all, delete-orphan",
        back_populates="product",
    )

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        Index("idx_products_created_at", "created_at"),
        Index("idx_products_liked_count", "liked_count"),
    )


class DeletedProduct(Base):
    __tablename__ = "deleted_products"

    id = Column(String(36), primary_key=True)
    snapshot = Column(JsonList, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class ProductComment(Base):
    __tablename__ = "product_comments"

    id = Column(String(36), primary_key=True, default=new_id)
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False, index=True)
    body = Column(Text, nullable=False)
    speaker_id = Column(String(36), nullable=False)
    speaker_display_name = Column(String(50), nullable=False)
    speaker_image_id = Column(String(64), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    product = relationship("Product", back_populates="comments")


class DraftProduct(Base):
    __tablename__ = "draft_products"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False, default="")
    price = Column(Integer, nullable=True)
    description = Column(Text, nullable=False, default="")
    condition = Column(String(32), nullable=True)
    category = Column(String(64), nullable=True)
    thumbnail_image_id = Column(String(64), nullable=True)
    image_ids = Column(JsonList, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    update_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class Trade(Base):
    __tablename__ = "trades"

    id = Column(String(36), primary_key=True, default=new_id)
    # Plain id reference: a trade outlives the listing it was made on
    product_id = Column(String(36), nullable=False, index=True)
    buyer_user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    status = Column(String(32), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    update_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    version = Column(Integer, nullable=False)

    comments = relationship(
        "TradeComment",
        order_by="TradeComment.created_at",
        cascade="all, delete-orphan",
        back_populates="trade",
    )

    __mapper_args__ = {"version_id_col": version}


class TradeComment(Base):
    __tablename__ = "trade_comments"

    id = Column(String(36), primary_key=True, default=new_id)
    trade_id = Column(String(36), ForeignKey("trades.id"), nullable=False, index=True)
    body = Column(Text, nullable=False)
    speaker = Column(String(8), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    trade = relationship("Trade", back_populates="comments")
