import pytest

from tsukumart.errors import ConcurrentUpdate
from tsukumart.models.product import Category, Condition, DataUrl, ProductStatus
from tsukumart.models.trade import TradeStatus
from tsukumart.models_sqlalchemy.models import Trade, UserPrivate
from tsukumart.services.trade import TradeEngine


async def _open_trade(services, register_user):
    seller_id, _ = register_user("race-seller")
    buyer_id, _ = register_user("race-buyer")
    product = await services.catalog.sell_product(
        seller_id,
        "Rice cooker",
        1000,
        "",
        Condition.very_good,
        Category.appliance_other,
        [DataUrl(mime_type="image/jpeg", data=b"cooker")],
    )
    trade = await services.trades.start_trade(buyer_id, product.id)
    return seller_id, buyer_id, product, trade


def _interleave(monkeypatch, race, hook="_role"):
    """Run ``race`` once, right after the first transaction calls ``hook``."""
    original = getattr(TradeEngine, hook)
    pending = [race]

    def racing(self, *args):
        result = original(self, *args)
        if pending:
            pending.pop()(self)
        return result

    monkeypatch.setattr(TradeEngine, hook, racing)


@pytest.mark.asyncio
async def test_finish_racing_cancel_loses(services, register_user, monkeypatch):
    seller_id, buyer_id, product, trade = await _open_trade(services, register_user)
    _interleave(monkeypatch, lambda engine: engine._cancel(buyer_id, trade.id))

    with pytest.raises(ConcurrentUpdate):
        await services.trades.finish_trade(seller_id, trade.id)
    monkeypatch.undo()

    view = services.trades.get_trade(seller_id, trade.id)
    assert view.status == TradeStatus.cancel_by_buyer
    assert services.catalog.get_product(product.id).status == ProductStatus.selling
    with services.store.session() as db:
        for user_id in (seller_id, buyer_id):
            private = db.get(UserPrivate, user_id)
            assert private.trading == []
            assert private.traded == [trade.id]


@pytest.mark.asyncio
async def test_cancel_racing_finish_loses(services, register_user, monkeypatch):
    seller_id, buyer_id, product, trade = await _open_trade(services, register_user)
    await services.trades.finish_trade(buyer_id, trade.id)
    _interleave(monkeypatch, lambda engine: engine._finish(seller_id, trade.id))

    with pytest.raises(ConcurrentUpdate):
        await services.trades.cancel_trade(buyer_id, trade.id)
    monkeypatch.undo()

    assert services.trades.get_trade(buyer_id, trade.id).status == TradeStatus.finish
    assert services.catalog.get_product(product.id).status == ProductStatus.sold_out
    with services.store.session() as db:
        assert db.get(UserPrivate, buyer_id).bought_product == [product.id]
        assert db.get(UserPrivate, buyer_id).traded == [trade.id]


@pytest.mark.asyncio
async def test_two_buyers_racing_for_one_product(services, register_user, monkeypatch):
    seller_id, _ = register_user("race-seller")
    first_buyer, _ = register_user("race-first-buyer")
    second_buyer, _ = register_user("race-second-buyer")
    product = await services.catalog.sell_product(
        seller_id,
        "Desk chair",
        800,
        "",
        Condition.good,
        Category.furniture_chair,
        [DataUrl(mime_type="image/jpeg", data=b"chair")],
    )
    # The second buyer commits while the first one has already seen the product on sale
    _interleave(monkeypatch, lambda engine: engine._start(second_buyer, product.id), hook="_private")

    with pytest.raises(ConcurrentUpdate):
        await services.trades.start_trade(first_buyer, product.id)
    monkeypatch.undo()

    assert services.catalog.get_product(product.id).status == ProductStatus.trading
    with services.store.session() as db:
        [trade] = db.query(Trade).all()
        assert trade.buyer_user_id == second_buyer
        assert db.get(UserPrivate, seller_id).trading == [trade.id]
        assert db.get(UserPrivate, second_buyer).trading == [trade.id]
        assert db.get(UserPrivate, first_buyer).trading == []
