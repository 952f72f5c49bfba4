import enum
import re
from datetime import datetime
from typing import List

from pydantic import BaseModel

from tsukumart.errors import ValidationError
from tsukumart.models.product import DraftProductView, ProductView
from tsukumart.models.trade import TradeView
from tsukumart.models.university import University


class AccountService(str, enum.Enum):
    line = "line"


_LOG_IN_ID_RE = re.compile(r"^(.+?)_(.+)$")


class LogInServiceAndId(BaseModel):
    """External login identity, stored as ``"<service>_<serviceId>"``."""

    service: AccountService
    service_id: str

    def to_string(self) -> str:
        return f"{self.service.value}_{self.service_id}"

    @classmethod
    def from_string(cls, value: str) -> "LogInServiceAndId":
        match = _LOG_IN_ID_RE.match(value or "")
        if not match:
            raise ValidationError(f"Malformed login identity: {value!r}")
        try:
            service = AccountService(match.group(1))
        except ValueError:
            raise ValidationError(f"Unknown login service: {match.group(1)!r}")
        return cls(service=service, service_id=match.group(2))


class UserView(BaseModel):
    id: str
    display_name: str
    image_id: str
    introduction: str
    university: University
    created_at: datetime
    sold_products: List[ProductView] = []


class UserPrivateView(UserView):
    email_address: str
    has_notify_token: bool
    liked_products: List[ProductView] = []
    history_view_products: List[ProductView] = []
    commented_products: List[ProductView] = []
    bought_products: List[ProductView] = []
    trading: List[TradeView] = []
    traded: List[TradeView] = []
    drafts: List[DraftProductView] = []
