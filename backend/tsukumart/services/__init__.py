from dataclasses import dataclass
from typing import Optional

from tsukumart.config import Settings
from tsukumart.models_sqlalchemy import Store
from tsukumart.services.auth import IdentityService
from tsukumart.services.catalog import CatalogService
from tsukumart.services.line_login import LineLoginClient
from tsukumart.services.line_notify import LineNotifyClient
from tsukumart.services.profile import ProfileService
from tsukumart.services.storage import ImageStorage
from tsukumart.services.trade import TradeEngine


@dataclass
class Services:
    """Everything a request handler needs, wired around one Store."""

    settings: Settings
    store: Store
    storage: ImageStorage
    line_login: LineLoginClient
    line_notify: LineNotifyClient
    identity: IdentityService
    catalog: CatalogService
    profile: ProfileService
    trades: TradeEngine


def build_services(
    settings: Settings,
    store: Optional[Store] = None,
    storage: Optional[ImageStorage] = None,
    line_login: Optional[LineLoginClient] = None,
    line_notify: Optional[LineNotifyClient] = None,
) -> Services:
    store = store or Store(settings.DATABASE_URL)
    storage = storage or ImageStorage(settings)
    line_login = line_login or LineLoginClient(settings)
    line_notify = line_notify or LineNotifyClient(settings)
    return Services(
        settings=settings,
        store=store,
        storage=storage,
        line_login=line_login,
        line_notify=line_notify,
        identity=IdentityService(store, storage, settings),
        catalog=CatalogService(store, storage, line_notify, settings),
        profile=ProfileService(store, storage),
        trades=TradeEngine(store, line_notify, settings),
    )
