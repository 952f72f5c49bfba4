import base64

import pytest
from fastapi.testclient import TestClient

from tsukumart.main import create_app
from tsukumart.models.user import AccountService, LogInServiceAndId

PRODUCT_FIELDS = """
  id
  name
  price
  condition
  category
  status
  thumbnailImageId
  imageIds
  likedCount
  createdAt
  seller { id displayName }
"""


def _data_url(data: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(data).decode("ascii")


@pytest.fixture
def client(settings, services):
    return TestClient(create_app(settings, services))


def _gql(client, query, **variables):
    resp = client.post("/api", json={"query": query, "variables": variables})
    return resp.json()


def _sell(client, token, name="Bookshelf", price=1500):
    return _gql(
        client,
        f"""
        mutation($token: String!, $name: String!, $price: Int!, $images: [DataURL!]!) {{
          sellProduct(
            accessToken: $token
            name: $name
            price: $price
            description: "Three shelves"
            images: $images
            condition: likeNew
            category: furnitureChest
          ) {{ {PRODUCT_FIELDS} }}
        }}
        """,
        token=token,
        name=name,
        price=price,
        images=[_data_url(b"shelf-front"), _data_url(b"shelf-back")],
    )


def test_empty_catalog(client):
    assert _gql(client, "{ productAll { id } productFreeAll { id } }") == {
        "data": {"productAll": [], "productFreeAll": []}
    }


def test_sell_and_read_product(client, register_user, storage):
    user_id, token = register_user("gql-seller", display_name="Shelf Seller")

    product = _sell(client, token)["data"]["sellProduct"]

    assert product["name"] == "Bookshelf"
    assert product["condition"] == "likeNew"
    assert product["category"] == "furnitureChest"
    assert product["status"] == "selling"
    assert product["seller"] == {"id": user_id, "displayName": "Shelf Seller"}
    assert isinstance(product["createdAt"], int)
    assert [storage.blobs[i][0] for i in product["imageIds"]] == [b"shelf-front", b"shelf-back"]

    fetched = _gql(
        client,
        "query($id: ID!) { product(productId: $id) { id name } }",
        id=product["id"],
    )
    assert fetched["data"]["product"] == {"id": product["id"], "name": "Bookshelf"}


def test_invalid_token_is_reported_generically(client, register_user, services):
    _, first = register_user("gql-token")
    # Logging in again supersedes the first token
    log_in = LogInServiceAndId(service=AccountService.line, service_id="gql-token")
    services.identity.resolve_or_create_user(log_in)

    for token in ("garbage", first):
        result = _gql(client, "query($t: String!) { userPrivate(accessToken: $t) { id } }", t=token)
        [error] = result["errors"]
        assert error["message"] == "Could not validate credentials"
        assert error["extensions"] == {"code": "UNAUTHENTICATED"}


def test_domain_errors_carry_their_code(client, register_user):
    _, token = register_user("gql-self")
    product = _sell(client, token)["data"]["sellProduct"]

    result = _gql(
        client,
        "mutation($t: String!, $p: ID!) { startTrade(accessToken: $t, productId: $p) { id } }",
        t=token,
        p=product["id"],
    )

    assert result["errors"][0]["extensions"]["code"] == "SELF_TRADE_FORBIDDEN"


def test_trade_through_api(client, register_user):
    _, seller_token = register_user("gql-trade-seller")
    _, buyer_token = register_user("gql-trade-buyer")
    product = _sell(client, seller_token)["data"]["sellProduct"]

    started = _gql(
        client,
        """
        mutation($t: String!, $p: ID!) {
          startTrade(accessToken: $t, productId: $p) { id status product { status } }
        }
        """,
        t=buyer_token,
        p=product["id"],
    )["data"]["startTrade"]
    assert started["status"] == "inProgress"
    assert started["product"]["status"] == "trading"

    commented = _gql(
        client,
        """
        mutation($t: String!, $id: ID!) {
          addTradeComment(accessToken: $t, tradeId: $id, body: "See you at the library") {
            comments { body speaker createdAt }
          }
        }
        """,
        t=seller_token,
        id=started["id"],
    )["data"]["addTradeComment"]
    assert commented["comments"][0]["speaker"] == "seller"

    finish = "mutation($t: String!, $id: ID!) { finishTrade(accessToken: $t, tradeId: $id) { status } }"
    assert _gql(client, finish, t=buyer_token, id=started["id"])["data"]["finishTrade"]["status"] == (
        "waitSellerFinish"
    )
    assert _gql(client, finish, t=seller_token, id=started["id"])["data"]["finishTrade"]["status"] == "finish"

    private = _gql(
        client,
        "query($t: String!) { userPrivate(accessToken: $t) { traded { id } boughtProducts { id } } }",
        t=buyer_token,
    )["data"]["userPrivate"]
    assert private["traded"] == [{"id": started["id"]}]
    assert private["boughtProducts"] == [{"id": product["id"]}]


def test_university_round_trips_through_api(client, register_user):
    user_id, token = register_user("gql-profile")

    updated = _gql(
        client,
        """
        mutation($t: String!, $u: UniversityInput!) {
          updateProfile(accessToken: $t, displayName: "New Name", introduction: "hi", university: $u) {
            displayName
            university { schoolAndDepartment graduate }
          }
        }
        """,
        t=token,
        u={"graduate": "global"},
    )["data"]["updateProfile"]
    assert updated == {
        "displayName": "New Name",
        "university": {"schoolAndDepartment": None, "graduate": "global"},
    }

    public = _gql(
        client,
        "query($id: ID!) { user(userId: $id) { university { schoolAndDepartment graduate } } }",
        id=user_id,
    )["data"]["user"]
    assert public["university"] == {"schoolAndDepartment": None, "graduate": "global"}


def test_university_without_department_or_graduate_is_rejected(client, register_user):
    _, token = register_user("gql-no-university")

    result = _gql(
        client,
        """
        mutation($t: String!) {
          updateProfile(accessToken: $t, displayName: "Name", introduction: "", university: {}) { id }
        }
        """,
        t=token,
    )

    assert result["errors"][0]["extensions"]["code"] == "INVALID_UNIVERSITY"


def test_search_through_api(client, register_user):
    _, token = register_user("gql-search")
    _sell(client, token, name="ギター", price=0)
    _sell(client, token, name="Amplifier", price=3000)

    result = _gql(
        client,
        """
        query {
          guitar: productSearch(query: "ぎたー") { name }
          grouped: productSearch(query: "", categoryGroup: furniture, condition: likeNew) { name }
          both: productSearch(query: "", category: furnitureChest, categoryGroup: furniture) { name }
        }
        """,
    )

    assert result["data"] is None
    assert result["errors"][0]["extensions"]["code"] == "VALIDATION_ERROR"

    result = _gql(
        client,
        """
        query {
          guitar: productSearch(query: "ぎたー") { name }
          grouped: productSearch(query: "", categoryGroup: furniture, condition: likeNew) { name }
          free: productFreeAll { name }
        }
        """,
    )
    assert result["data"]["guitar"] == [{"name": "ギター"}]
    assert sorted(p["name"] for p in result["data"]["grouped"]) == ["Amplifier", "ギター"]
    assert result["data"]["free"] == [{"name": "ギター"}]


def test_log_in_url_issues_state(client, services):
    url = _gql(client, "mutation { getLogInUrl(service: line) }")["data"]["getLogInUrl"]

    assert url.startswith("https://access.line.me/oauth2/v2.1/authorize?")
    state = url.split("state=", 1)[1].split("&", 1)[0]
    assert services.identity.consume_log_in_state(state) == AccountService.line


def test_line_notify_url_requires_token(client, register_user, services):
    user_id, token = register_user("gql-notify")

    url = _gql(client, "mutation($t: String!) { getLineNotifyUrl(accessToken: $t) }", t=token)["data"][
        "getLineNotifyUrl"
    ]

    assert url.startswith("https://notify-bot.line.me/oauth/authorize?")
    assert "scope=notify" in url
    state = url.split("state=", 1)[1].split("&", 1)[0]
    assert services.identity.consume_notify_state(state) == user_id


def test_drafts_through_api(client, register_user):
    _, token = register_user("gql-drafts")

    draft = _gql(
        client,
        """
        mutation($t: String!) {
          addDraftProduct(accessToken: $t, name: "Half done", description: "", images: []) {
            draftId price category imageIds
          }
        }
        """,
        t=token,
    )["data"]["addDraftProduct"]
    assert draft["price"] is None and draft["category"] is None and draft["imageIds"] == []

    remaining = _gql(
        client,
        "mutation($t: String!, $d: ID!) { deleteDraftProduct(accessToken: $t, draftId: $d) { draftId } }",
        t=token,
        d=draft["draftId"],
    )["data"]["deleteDraftProduct"]
    assert remaining == []


def test_image_endpoint(client, storage):
    image_id = "stored-image"
    storage.blobs[image_id] = (b"\x89PNG...", "image/png")

    resp = client.get(f"/image/{image_id}")
    assert resp.status_code == 200
    assert resp.content == b"\x89PNG..."
    assert resp.headers["content-type"] == "image/png"
    assert resp.headers["cache-control"] == "public, max-age=31536000"

    assert client.get("/image/missing").status_code == 404

    storage.fail = True
    assert client.get(f"/image/{image_id}").status_code == 503


def test_requests_get_an_id(client):
    resp = client.get("/image/missing")
    assert len(resp.headers["X-Request-ID"]) == 8
