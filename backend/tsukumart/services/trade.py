"""Trade lifecycle.

::

    (product selling) --startTrade--> inProgress
    inProgress       --finish by seller--> waitBuyerFinish
    inProgress       --finish by buyer-->  waitSellerFinish
    waitSellerFinish --finish by seller--> finish           (product soldOut)
    waitBuyerFinish  --finish by buyer-->  finish           (product soldOut)
    any open status  --cancel-->           cancelBySeller / cancelByBuyer (product selling)

Every operation reads and writes in one transaction. Trades, products and
user records are versioned, so when two requests race on the same trade the
first commit wins and the other fails with ConcurrentUpdate. Notifications
go out after the commit in the background and never hold up or fail the
operation.
"""

from typing import NamedTuple, Optional

from sqlalchemy.orm import Session

from tsukumart.config import Settings
from tsukumart.errors import (
    Forbidden,
    NotFound,
    ProductNotAvailable,
    SelfTradeForbidden,
    UserNotFound,
)
from tsukumart.models.product import ProductStatus
from tsukumart.models.trade import (
    OPEN_TRADE_STATUSES,
    SellerOrBuyer,
    TradeStatus,
    TradeView,
)
from tsukumart.models_sqlalchemy import Store
from tsukumart.models_sqlalchemy.models import (
    DeletedProduct,
    Product,
    Trade,
    TradeComment,
    UserPrivate,
    new_id,
    utcnow,
)
from tsukumart.services import line_notify
from tsukumart.services.views import trade_view
from tsukumart.utils.logger import logger

_FINISH_TRANSITIONS = {
    (TradeStatus.in_progress, SellerOrBuyer.seller): TradeStatus.wait_buyer_finish,
    (TradeStatus.in_progress, SellerOrBuyer.buyer): TradeStatus.wait_seller_finish,
    (TradeStatus.wait_seller_finish, SellerOrBuyer.seller): TradeStatus.finish,
    (TradeStatus.wait_buyer_finish, SellerOrBuyer.buyer): TradeStatus.finish,
}

_CANCEL_STATUS = {
    SellerOrBuyer.seller: TradeStatus.cancel_by_seller,
    SellerOrBuyer.buyer: TradeStatus.cancel_by_buyer,
}


class Notice(NamedTuple):
    token: Optional[str]
    message: str
    sticker: bool = False


class TradeEngine:
    def __init__(self, store: Store, notifier, settings: Settings):
        self.store = store
        self.notifier = notifier
        self.settings = settings

    def _private(self, db: Session, user_id: str) -> UserPrivate:
        private = db.get(UserPrivate, user_id)
        if private is None:
            raise UserNotFound()
        return private

    def _load(self, db: Session, trade_id: str) -> tuple[Trade, Optional[Product], str, str]:
        """Return the trade, its live product, the seller id and the product name."""
        trade = db.get(Trade, trade_id)
        if trade is None:
            raise NotFound(f"Trade {trade_id} not found")
        product = db.get(Product, trade.product_id)
        if product is not None:
            return trade, product, product.seller_id, product.name
        # Products can be deleted again after a cancelled trade
        archived = db.get(DeletedProduct, trade.product_id)
        if archived is None:
            raise NotFound(f"Product {trade.product_id} not found")
        return trade, None, archived.snapshot["seller"]["id"], archived.snapshot["name"]

    def _role(self, trade: Trade, seller_id: str, user_id: str) -> SellerOrBuyer:
        if user_id == trade.buyer_user_id:
            return SellerOrBuyer.buyer
        if user_id == seller_id:
            return SellerOrBuyer.seller
        raise Forbidden("Only the buyer or the seller can access this trade")

    def _other_party(self, trade: Trade, seller_id: str, role: SellerOrBuyer) -> str:
        return trade.buyer_user_id if role == SellerOrBuyer.seller else seller_id

    def _close(self, db: Session, trade: Trade, product: Product, seller_id: str, product_status: ProductStatus) -> None:
        for user_id in (seller_id, trade.buyer_user_id):
            private = self._private(db, user_id)
            private.remove_id("trading", trade.id)
            private.add_id("traded", trade.id)
        product.status = product_status.value
        product.update_at = utcnow()

    def _send(self, notice: Optional[Notice]) -> None:
        if notice is not None:
            self.notifier.schedule(notice.token, notice.message, sticker=notice.sticker)

    def get_trade(self, user_id: str, trade_id: str) -> TradeView:
        with self.store.session() as db:
            private = self._private(db, user_id)
            if trade_id not in (private.trading or []) and trade_id not in (private.traded or []):
                raise Forbidden("Only the buyer or the seller can access this trade")
            trade, _, _, _ = self._load(db, trade_id)
            return trade_view(db, trade)

    def _start(self, buyer_id: str, product_id: str) -> tuple[TradeView, Notice]:
        with self.store.session() as db:
            product = db.get(Product, product_id)
            if product is None:
                raise NotFound(f"Product {product_id} not found")
            if product.seller_id == buyer_id:
                raise SelfTradeForbidden()
            if product.status != ProductStatus.selling.value:
                raise ProductNotAvailable()

            buyer_private = self._private(db, buyer_id)
            seller_private = self._private(db, product.seller_id)

            now = utcnow()
            trade = Trade(
                id=new_id(),
                product_id=product.id,
                buyer_user_id=buyer_id,
                status=TradeStatus.in_progress.value,
                created_at=now,
                update_at=now,
            )
            db.add(trade)
            product.status = ProductStatus.trading.value
            product.update_at = now
            buyer_private.add_id("trading", trade.id)
            seller_private.add_id("trading", trade.id)
            db.flush()

            view = trade_view(db, trade)
            notice = Notice(
                seller_private.notify_token,
                line_notify.start_trade_message(self.settings.FRONTEND_URL, product.name, trade.id),
                sticker=True,
            )
        logger.info(f"Trade started: {view.id} product={product_id} buyer={buyer_id}")
        return view, notice

    async def start_trade(self, buyer_id: str, product_id: str) -> TradeView:
        view, notice = self._start(buyer_id, product_id)
        self._send(notice)
        return view

    def _finish(self, user_id: str, trade_id: str) -> TradeView:
        with self.store.session() as db:
            trade, product, seller_id, _ = self._load(db, trade_id)
            role = self._role(trade, seller_id, user_id)

            target = _FINISH_TRANSITIONS.get((TradeStatus(trade.status), role))
            if target is None:
                # Not this party's turn; report the trade unchanged
                return trade_view(db, trade)

            trade.status = target.value
            trade.update_at = utcnow()
            if target == TradeStatus.finish:
                self._close(db, trade, product, seller_id, ProductStatus.sold_out)
                self._private(db, trade.buyer_user_id).add_id("bought_product", trade.product_id)
            db.flush()
            view = trade_view(db, trade)
        logger.info(f"Trade {trade_id} finished by {role.value}: now {view.status.value}")
        return view

    async def finish_trade(self, user_id: str, trade_id: str) -> TradeView:
        return self._finish(user_id, trade_id)

    def _cancel(self, user_id: str, trade_id: str) -> tuple[TradeView, Optional[Notice]]:
        with self.store.session() as db:
            trade, product, seller_id, product_name = self._load(db, trade_id)
            role = self._role(trade, seller_id, user_id)

            if TradeStatus(trade.status) not in OPEN_TRADE_STATUSES:
                return trade_view(db, trade), None

            trade.status = _CANCEL_STATUS[role].value
            trade.update_at = utcnow()
            self._close(db, trade, product, seller_id, ProductStatus.selling)
            db.flush()

            view = trade_view(db, trade)
            other = self._private(db, self._other_party(trade, seller_id, role))
            notice = Notice(
                other.notify_token,
                line_notify.cancel_trade_message(self.settings.FRONTEND_URL, product_name, trade.id),
                sticker=True,
            )
        logger.info(f"Trade {trade_id} cancelled by {role.value}")
        return view, notice

    async def cancel_trade(self, user_id: str, trade_id: str) -> TradeView:
        view, notice = self._cancel(user_id, trade_id)
        self._send(notice)
        return view

    def _comment(self, user_id: str, trade_id: str, body: str) -> tuple[TradeView, Notice]:
        with self.store.session() as db:
            trade, _, seller_id, product_name = self._load(db, trade_id)
            role = self._role(trade, seller_id, user_id)

            now = utcnow()
            db.add(TradeComment(id=new_id(), trade_id=trade.id, body=body, speaker=role.value, created_at=now))
            trade.update_at = now
            db.flush()

            view = trade_view(db, trade)
            other = self._private(db, self._other_party(trade, seller_id, role))
            notice = Notice(
                other.notify_token,
                line_notify.trade_comment_message(self.settings.FRONTEND_URL, product_name, trade.id, body),
            )
        return view, notice

    async def add_trade_comment(self, user_id: str, trade_id: str, body: str) -> TradeView:
        view, notice = self._comment(user_id, trade_id, body)
        self._send(notice)
        return view
