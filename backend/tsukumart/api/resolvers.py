import enum
from datetime import datetime, timezone
from typing import Any, Optional

from ariadne import MutationType, QueryType, ScalarType, make_executable_schema
from ariadne import format_error as default_format_error
from graphql import GraphQLError, GraphQLSchema

from tsukumart.api.schema import type_defs
from tsukumart.errors import InvalidToken, MarketError
from tsukumart.models.product import Category, CategoryGroup, Condition, DataUrl
from tsukumart.models.university import (
    Department,
    Graduate,
    School,
    university_from_internal,
    university_to_internal,
)
from tsukumart.models.user import AccountService, UserView
from tsukumart.services import Services
from tsukumart.utils.logger import logger

query = QueryType()
mutation = MutationType()
datetime_scalar = ScalarType("DateTime")
data_url_scalar = ScalarType("DataURL")
url_scalar = ScalarType("URL")


@datetime_scalar.serializer
def serialize_datetime(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


@datetime_scalar.value_parser
def parse_datetime(value: Any) -> datetime:
    return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)


@data_url_scalar.value_parser
def parse_data_url(value: Any) -> DataUrl:
    return DataUrl.parse(value)


@url_scalar.serializer
def serialize_url(value: Any) -> str:
    return str(value)


def format_error(error: GraphQLError, debug: bool = False) -> dict:
    """Expose domain errors with their code; hide which token check failed."""
    original = error.original_error
    if isinstance(original, InvalidToken):
        formatted = error.formatted
        formatted["message"] = "Could not validate credentials"
        formatted["extensions"] = {"code": "UNAUTHENTICATED"}
        return formatted
    if isinstance(original, MarketError):
        formatted = error.formatted
        formatted["message"] = original.message
        formatted["extensions"] = {"code": original.code}
        return formatted
    if original is not None:
        logger.exception("Unhandled resolver error", exc_info=original)
    return default_format_error(error, debug)


def _plain(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


def _dump(view) -> dict:
    return _plain(view.model_dump())


def _dump_user(view: UserView) -> dict:
    data = _plain(view.model_dump(exclude={"university"}))
    school_and_department, graduate = university_to_internal(view.university)
    data["university"] = {"school_and_department": school_and_department, "graduate": graduate}
    return data


def _university(value: Optional[dict]):
    value = value or {}
    return university_from_internal(value.get("school_and_department"), value.get("graduate"))


def _enum(enum_type, value):
    return enum_type(value) if value is not None else None


def _services(info) -> Services:
    return info.context["services"]


def _user_id(info, access_token: str) -> str:
    return _services(info).identity.verify_access_token(access_token)


# Queries

@query.field("user")
def resolve_user(_, info, user_id: str):
    return _dump_user(_services(info).profile.get_user(user_id))


@query.field("userPrivate")
def resolve_user_private(_, info, access_token: str):
    user_id = _user_id(info, access_token)
    return _dump_user(_services(info).profile.get_user_private(user_id))


@query.field("product")
def resolve_product(_, info, product_id: str):
    return _dump(_services(info).catalog.get_product(product_id))


@query.field("productSearch")
def resolve_product_search(
    _,
    info,
    query: str,
    category=None,
    category_group=None,
    condition=None,
    school=None,
    department=None,
    graduate=None,
):
    products = _services(info).catalog.search(
        query,
        category=_enum(Category, category),
        category_group=_enum(CategoryGroup, category_group),
        condition=_enum(Condition, condition),
        school=_enum(School, school),
        department=_enum(Department, department),
        graduate=_enum(Graduate, graduate),
    )
    return [_dump(p) for p in products]


@query.field("productAll")
def resolve_product_all(_, info):
    return [_dump(p) for p in _services(info).catalog.get_all_products()]


@query.field("productRecentAll")
def resolve_product_recent_all(_, info):
    return [_dump(p) for p in _services(info).catalog.get_recent_products()]


@query.field("productRecommendAll")
def resolve_product_recommend_all(_, info):
    return [_dump(p) for p in _services(info).catalog.get_recommend_products()]


@query.field("productFreeAll")
def resolve_product_free_all(_, info):
    return [_dump(p) for p in _services(info).catalog.get_free_products()]


@query.field("trade")
def resolve_trade(_, info, access_token: str, trade_id: str):
    user_id = _user_id(info, access_token)
    return _dump(_services(info).trades.get_trade(user_id, trade_id))


# Accounts

@mutation.field("getLogInUrl")
def resolve_get_log_in_url(_, info, service: str):
    services = _services(info)
    state = services.identity.generate_log_in_state(AccountService(service))
    return services.line_login.authorize_url(state)


@mutation.field("getLineNotifyUrl")
def resolve_get_line_notify_url(_, info, access_token: str):
    services = _services(info)
    state = services.identity.generate_notify_state(_user_id(info, access_token))
    return services.line_notify.authorize_url(state)


@mutation.field("registerSignUpData")
async def resolve_register_sign_up_data(
    _, info, send_email_token: str, display_name: str, university: dict, email: str, image=None
):
    return await _services(info).identity.register_sign_up_data(
        send_email_token, display_name, image, _university(university), email
    )


@mutation.field("updateProfile")
async def resolve_update_profile(
    _, info, access_token: str, display_name: str, introduction: str, university: dict, image=None
):
    user_id = _user_id(info, access_token)
    view = await _services(info).profile.set_profile(
        user_id, display_name, introduction, _university(university), image
    )
    return _dump_user(view)


# Products

@mutation.field("sellProduct")
async def resolve_sell_product(
    _, info, access_token: str, name: str, price: int, description: str, images: list, condition: str, category: str
):
    user_id = _user_id(info, access_token)
    view = await _services(info).catalog.sell_product(
        user_id, name, price, description, Condition(condition), Category(category), images
    )
    return _dump(view)


@mutation.field("markProductInHistory")
def resolve_mark_product_in_history(_, info, access_token: str, product_id: str):
    user_id = _user_id(info, access_token)
    return _dump(_services(info).catalog.mark_product_in_history(user_id, product_id))


@mutation.field("likeProduct")
def resolve_like_product(_, info, access_token: str, product_id: str):
    return _services(info).catalog.like_product(_user_id(info, access_token), product_id)


@mutation.field("unlikeProduct")
def resolve_unlike_product(_, info, access_token: str, product_id: str):
    return _services(info).catalog.unlike_product(_user_id(info, access_token), product_id)


@mutation.field("addProductComment")
async def resolve_add_product_comment(_, info, access_token: str, product_id: str, body: str):
    user_id = _user_id(info, access_token)
    return _dump(await _services(info).catalog.add_product_comment(user_id, product_id, body))


@mutation.field("updateProduct")
async def resolve_update_product(
    _,
    info,
    access_token: str,
    product_id: str,
    name: str,
    price: int,
    description: str,
    condition: str,
    category: str,
    add_images: list,
    delete_image_index: list,
):
    user_id = _user_id(info, access_token)
    view = await _services(info).catalog.update_product(
        user_id,
        product_id,
        name,
        price,
        description,
        Condition(condition),
        Category(category),
        add_images=add_images,
        delete_image_index=delete_image_index,
    )
    return _dump(view)


@mutation.field("deleteProduct")
def resolve_delete_product(_, info, access_token: str, product_id: str):
    return _services(info).catalog.delete_product(_user_id(info, access_token), product_id)


@mutation.field("addDraftProduct")
async def resolve_add_draft_product(
    _, info, access_token: str, name: str, description: str, images: list, price=None, condition=None, category=None
):
    user_id = _user_id(info, access_token)
    view = await _services(info).catalog.add_draft_product(
        user_id, name, price, description, _enum(Condition, condition), _enum(Category, category), images
    )
    return _dump(view)


@mutation.field("updateDraftProduct")
async def resolve_update_draft_product(
    _,
    info,
    access_token: str,
    draft_id: str,
    name: str,
    description: str,
    delete_image_index: list,
    add_images: list,
    price=None,
    condition=None,
    category=None,
):
    user_id = _user_id(info, access_token)
    drafts = await _services(info).catalog.update_draft_product(
        user_id,
        draft_id,
        name,
        price,
        description,
        _enum(Condition, condition),
        _enum(Category, category),
        delete_image_index=delete_image_index,
        add_images=add_images,
    )
    return [_dump(d) for d in drafts]


@mutation.field("deleteDraftProduct")
def resolve_delete_draft_product(_, info, access_token: str, draft_id: str):
    drafts = _services(info).catalog.delete_draft_product(_user_id(info, access_token), draft_id)
    return [_dump(d) for d in drafts]


# Trades

@mutation.field("startTrade")
async def resolve_start_trade(_, info, access_token: str, product_id: str):
    user_id = _user_id(info, access_token)
    return _dump(await _services(info).trades.start_trade(user_id, product_id))


@mutation.field("addTradeComment")
async def resolve_add_trade_comment(_, info, access_token: str, trade_id: str, body: str):
    user_id = _user_id(info, access_token)
    return _dump(await _services(info).trades.add_trade_comment(user_id, trade_id, body))


@mutation.field("cancelTrade")
async def resolve_cancel_trade(_, info, access_token: str, trade_id: str):
    user_id = _user_id(info, access_token)
    return _dump(await _services(info).trades.cancel_trade(user_id, trade_id))


@mutation.field("finishTrade")
async def resolve_finish_trade(_, info, access_token: str, trade_id: str):
    user_id = _user_id(info, access_token)
    return _dump(await _services(info).trades.finish_trade(user_id, trade_id))


def build_schema() -> GraphQLSchema:
    return make_executable_schema(
        type_defs,
        query,
        mutation,
        datetime_scalar,
        data_url_scalar,
        url_scalar,
        convert_names_case=True,
    )
