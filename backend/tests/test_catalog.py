import pytest

from tsukumart.errors import (
    EmptyComment,
    Forbidden,
    ImageListEmpty,
    NotFound,
    ProductNotAvailable,
    ValidationError,
)
from tsukumart.models.product import Category, Condition, DataUrl
from tsukumart.models.university import Department, NotGraduate
from tsukumart.models_sqlalchemy.models import DeletedProduct, User, UserPrivate
from tsukumart.services.catalog import normalize_search_text, plan_image_update

SELLER_NOTIFY = "catalog-seller-notify"


def _image(data: bytes) -> DataUrl:
    return DataUrl(mime_type="image/png", data=data)


@pytest.fixture
def seller(register_user):
    user_id, _ = register_user("catalog-seller", display_name="Seller", notify_token=SELLER_NOTIFY)
    return user_id


@pytest.fixture
def visitor(register_user):
    user_id, _ = register_user("catalog-visitor", display_name="Visitor")
    return user_id


async def _sell(services, seller_id, images=(b"one", b"two", b"three"), price=1200):
    return await services.catalog.sell_product(
        seller_id,
        "Textbook",
        price,
        "Linear algebra",
        Condition.like_new,
        Category.book_textbook,
        [_image(i) for i in images],
    )


def test_image_plan_keeps_order_and_flags_first_image():
    plan = plan_image_update(["a", "b", "c", "d"], [0, 2], 1)
    assert plan.kept == ["b", "d"]
    assert plan.first_removed is True

    plan = plan_image_update(["a", "b"], [1, 7], 0)
    assert plan.kept == ["a"]
    assert plan.first_removed is False


def test_image_plan_rejects_empty_result():
    with pytest.raises(ImageListEmpty):
        plan_image_update(["a", "b"], [0, 1], 0)
    assert plan_image_update(["a"], [0], 0, allow_empty=True).kept == []


def test_search_text_folds_katakana_and_case():
    assert normalize_search_text("カメラ ABC") == "かめら abc"
    assert normalize_search_text("ひらがな") == "ひらがな"


@pytest.mark.asyncio
async def test_sell_product(services, storage, seller):
    product = await _sell(services, seller)

    assert product.seller.id == seller
    assert product.seller.display_name == "Seller"
    assert product.liked_count == 0 and product.viewed_count == 0
    assert [storage.blobs[i][0] for i in product.image_ids] == [b"one", b"two", b"three"]
    assert storage.blobs[product.thumbnail_image_id][0] == b"thumb:one"
    with services.store.session() as db:
        assert db.get(User, seller).sold_products == [product.id]


@pytest.mark.asyncio
async def test_sell_product_needs_images_and_valid_price(services, storage, seller):
    with pytest.raises(ImageListEmpty):
        await _sell(services, seller, images=())
    with pytest.raises(ValidationError):
        await _sell(services, seller, price=-1)
    assert storage.blobs == {}


@pytest.mark.asyncio
async def test_update_product_regenerates_thumbnail_when_first_image_removed(services, storage, seller):
    product = await _sell(services, seller)
    one, two, three = product.image_ids

    updated = await services.catalog.update_product(
        seller,
        product.id,
        "Textbook (2nd ed.)",
        1000,
        "Linear algebra, some notes",
        Condition.good,
        Category.book_textbook,
        add_images=[_image(b"four")],
        delete_image_index=[0, 2],
    )

    assert updated.image_ids[:1] == [two]
    assert storage.blobs[updated.image_ids[1]][0] == b"four"
    assert len(updated.image_ids) == 2
    assert updated.thumbnail_image_id != product.thumbnail_image_id
    assert storage.blobs[updated.thumbnail_image_id][0] == b"thumb:two"
    assert updated.name == "Textbook (2nd ed.)"
    assert updated.condition == Condition.good


@pytest.mark.asyncio
async def test_update_product_keeps_thumbnail_when_first_image_stays(services, seller):
    product = await _sell(services, seller)

    updated = await services.catalog.update_product(
        seller,
        product.id,
        product.name,
        product.price,
        product.description,
        product.condition,
        product.category,
        add_images=[],
        delete_image_index=[1],
    )

    assert updated.image_ids == [product.image_ids[0], product.image_ids[2]]
    assert updated.thumbnail_image_id == product.thumbnail_image_id


@pytest.mark.asyncio
async def test_update_product_rejects_removing_every_image_before_upload(services, storage, seller):
    product = await _sell(services, seller)
    stored = len(storage.blobs)

    with pytest.raises(ImageListEmpty):
        await services.catalog.update_product(
            seller,
            product.id,
            product.name,
            product.price,
            product.description,
            product.condition,
            product.category,
            add_images=[],
            delete_image_index=[0, 1, 2],
        )
    assert len(storage.blobs) == stored


@pytest.mark.asyncio
async def test_only_seller_may_change_product(services, seller, visitor):
    product = await _sell(services, seller)

    with pytest.raises(Forbidden):
        await services.catalog.update_product(
            visitor, product.id, "Mine", 1, "", Condition.junk, Category.book_other
        )
    with pytest.raises(Forbidden):
        services.catalog.delete_product(visitor, product.id)


@pytest.mark.asyncio
async def test_product_in_trade_cannot_be_changed(services, seller, visitor):
    product = await _sell(services, seller)
    await services.trades.start_trade(visitor, product.id)

    with pytest.raises(ProductNotAvailable):
        await services.catalog.update_product(
            seller, product.id, "New", 1, "", Condition.junk, Category.book_other
        )
    with pytest.raises(ProductNotAvailable):
        services.catalog.delete_product(seller, product.id)


@pytest.mark.asyncio
async def test_delete_product_archives_it(services, seller):
    product = await _sell(services, seller)

    assert services.catalog.delete_product(seller, product.id) is True

    with pytest.raises(NotFound):
        services.catalog.get_product(product.id)
    with services.store.session() as db:
        assert db.get(User, seller).sold_products == []
        archived = db.get(DeletedProduct, product.id)
        assert archived.snapshot["name"] == "Textbook"
        assert archived.snapshot["seller"]["id"] == seller


@pytest.mark.asyncio
async def test_like_and_unlike_are_idempotent(services, seller, visitor):
    product = await _sell(services, seller)

    assert services.catalog.like_product(visitor, product.id) is True
    services.catalog.like_product(visitor, product.id)
    assert services.catalog.get_product(product.id).liked_count == 1
    assert [p.id for p in services.profile.get_user_private(visitor).liked_products] == [product.id]

    services.catalog.unlike_product(visitor, product.id)
    assert services.catalog.unlike_product(visitor, product.id) is True
    assert services.catalog.get_product(product.id).liked_count == 0
    assert services.profile.get_user_private(visitor).liked_products == []


@pytest.mark.asyncio
async def test_like_of_missing_product_is_not_found(services, visitor):
    with pytest.raises(NotFound):
        services.catalog.like_product(visitor, "missing")


@pytest.mark.asyncio
async def test_every_view_is_counted(services, seller, visitor):
    product = await _sell(services, seller)

    services.catalog.mark_product_in_history(visitor, product.id)
    viewed = services.catalog.mark_product_in_history(visitor, product.id)

    assert viewed.viewed_count == 2
    with services.store.session() as db:
        assert db.get(UserPrivate, visitor).history_view_product == [product.id]


@pytest.mark.asyncio
async def test_product_comment_notifies_seller(services, line_api, seller, visitor):
    product = await _sell(services, seller)

    commented = await services.catalog.add_product_comment(visitor, product.id, "Is it still available?")

    [comment] = commented.comments
    assert comment.body == "Is it still available?"
    assert comment.speaker.display_name == "Visitor"
    assert commented.update_at == comment.created_at
    assert commented.update_at > product.update_at
    await services.line_notify.drain()
    [message] = line_api.messages_to(SELLER_NOTIFY)
    assert "Visitor" in message["message"]
    assert product.id in message["message"]
    with services.store.session() as db:
        assert db.get(UserPrivate, visitor).commented_product == [product.id]


@pytest.mark.asyncio
async def test_seller_reply_is_not_notified_to_seller(services, line_api, seller):
    product = await _sell(services, seller)

    await services.catalog.add_product_comment(seller, product.id, "Yes it is")

    await services.line_notify.drain()
    assert line_api.sent == []


@pytest.mark.asyncio
async def test_empty_comment_is_rejected(services, seller):
    product = await _sell(services, seller)
    with pytest.raises(EmptyComment):
        await services.catalog.add_product_comment(seller, product.id, "   ")


@pytest.mark.asyncio
async def test_seller_snapshot_is_not_resynced(services, seller):
    product = await _sell(services, seller)

    await services.profile.set_profile(seller, "Renamed", "", NotGraduate(department=Department.coins))

    assert services.catalog.get_product(product.id).seller.display_name == "Seller"


@pytest.mark.asyncio
async def test_listing_queries(services, seller, visitor):
    cheap = await _sell(services, seller, price=0)
    popular = await _sell(services, seller, price=300)
    services.catalog.like_product(visitor, popular.id)

    assert {p.id for p in services.catalog.get_all_products()} == {cheap.id, popular.id}
    assert [p.id for p in services.catalog.get_recent_products()] == [popular.id, cheap.id]
    assert [p.id for p in services.catalog.get_recommend_products()][0] == popular.id
    assert [p.id for p in services.catalog.get_free_products()] == [cheap.id]


@pytest.mark.asyncio
async def test_drafts_lifecycle(services, storage, seller):
    draft = await services.catalog.add_draft_product(seller, "Unfinished", None, "", None, None, [])
    assert draft.thumbnail_image_id is None
    assert draft.image_ids == []
    assert draft.price is None

    [updated] = await services.catalog.update_draft_product(
        seller,
        draft.draft_id,
        "Chair",
        800,
        "Wooden",
        Condition.acceptable,
        Category.furniture_chair,
        delete_image_index=[],
        add_images=[_image(b"chair")],
    )
    assert updated.category == Category.furniture_chair
    assert storage.blobs[updated.thumbnail_image_id][0] == b"thumb:chair"

    [emptied] = await services.catalog.update_draft_product(
        seller, draft.draft_id, "Chair", 800, "Wooden", None, None, delete_image_index=[0]
    )
    assert emptied.image_ids == []
    assert emptied.thumbnail_image_id is None

    assert [d.draft_id for d in services.catalog.get_draft_products(seller)] == [draft.draft_id]
    assert services.catalog.delete_draft_product(seller, draft.draft_id) == []


@pytest.mark.asyncio
async def test_drafts_are_private_to_their_owner(services, seller, visitor):
    draft = await services.catalog.add_draft_product(seller, "Mine", 100, "", None, None, [])

    with pytest.raises(NotFound):
        services.catalog.delete_draft_product(visitor, draft.draft_id)
    assert services.profile.get_user_private(seller).drafts[0].draft_id == draft.draft_id
