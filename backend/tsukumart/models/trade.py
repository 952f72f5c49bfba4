import enum
from datetime import datetime
from typing import List

from pydantic import BaseModel

from tsukumart.models.product import ProductView, UserSummary


class TradeStatus(str, enum.Enum):
    in_progress = "inProgress"
    wait_seller_finish = "waitSellerFinish"
    wait_buyer_finish = "waitBuyerFinish"
    finish = "finish"
    cancel_by_seller = "cancelBySeller"
    cancel_by_buyer = "cancelByBuyer"


OPEN_TRADE_STATUSES = frozenset(
    {TradeStatus.in_progress, TradeStatus.wait_seller_finish, TradeStatus.wait_buyer_finish}
)


class SellerOrBuyer(str, enum.Enum):
    seller = "seller"
    buyer = "buyer"


class TradeCommentView(BaseModel):
    comment_id: str
    body: str
    speaker: SellerOrBuyer
    created_at: datetime


class TradeView(BaseModel):
    id: str
    product: ProductView
    buyer: UserSummary
    status: TradeStatus
    comments: List[TradeCommentView] = []
    created_at: datetime
    update_at: datetime
