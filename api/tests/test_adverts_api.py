from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

import pytest
from fastapi.testclient import TestClient

import app.core.security as security
from app.api.dependencies import get_object_store
from app.main import app
from app.services.repository import get_repository
from app.services.store import InMemoryAdvertStore

OWNER_ID = "3c9b7a10-1d2e-4f5a-8b6c-000000000001"
INTRUDER_ID = "3c9b7a10-1d2e-4f5a-8b6c-000000000002"
MISSING_ID = "3c9b7a10-1d2e-4f5a-8b6c-0000000000ff"
BASE_TIME = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

USERS = {
    "owner-token": {"id": OWNER_ID, "email": "ana@example.com", "user_metadata": {"name": "ana"}},
    "intruder-token": {"id": INTRUDER_ID, "email": "bo@example.com", "user_metadata": {"name": "bo"}},
}


class FakeObjectStore:
    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.deleted: list[str] = []

    async def put(self, key: str, content: bytes, content_type: str | None = None) -> None:
        self.objects[key] = content

    async def delete(self, key: str) -> None:
        self.deleted.append(key)
        self.objects.pop(key, None)


class ExplodingRepository(InMemoryAdvertStore):
    async def count_adverts(self, predicate: Any) -> int:
        raise RuntimeError("connection reset by peer")


@pytest.fixture
def store() -> InMemoryAdvertStore:
    store = InMemoryAdvertStore()
    store.add_account("ana", email="ana@example.com", account_id=OWNER_ID)
    store.add_account("bo", email="bo@example.com", account_id=INTRUDER_ID)
    return store


@pytest.fixture
def object_store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def client(
    store: InMemoryAdvertStore, object_store: FakeObjectStore, monkeypatch: pytest.MonkeyPatch
) -> TestClient:
    async def _fake_fetch(**kwargs: Any) -> dict[str, Any] | None:
        return USERS.get(kwargs["token"])

    monkeypatch.setattr(security, "_fetch_supabase_user", _fake_fetch)
    app.dependency_overrides[get_repository] = lambda: store
    app.dependency_overrides[get_object_store] = lambda: object_store
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _seed(store: InMemoryAdvertStore, title: str, *, minutes: int = 0, **overrides: Any) -> dict[str, Any]:
    record: dict[str, Any] = {
        "title": title,
        "image_ref": f"{minutes}-{title.lower().replace(' ', '_')}.jpg",
        "description": f"{title} in good condition",
        "price": Decimal("100"),
        "category": "for_sale",
        "tags": [],
        "owner_id": OWNER_ID,
        "published_at": BASE_TIME + timedelta(minutes=minutes),
        "slug": title.lower().replace(" ", "-"),
        "status": "available",
    }
    record.update(overrides)
    return asyncio.run(store.insert_advert(record))


def test_catalog_pages_report_totals(client: TestClient, store: InMemoryAdvertStore) -> None:
    for index in range(3):
        _seed(store, f"Advert {index}", minutes=index)

    response = client.get("/adverts", params={"page": 1, "limit": 2})

    assert response.status_code == 200
    body = response.json()
    assert len(body["items"]) == 2
    assert body["total"] == 3
    assert body["totalPages"] == 2
    assert body["page"] == 1
    assert [item["title"] for item in body["items"]] == ["Advert 2", "Advert 1"]


def test_catalog_items_carry_owner_projection(client: TestClient, store: InMemoryAdvertStore) -> None:
    _seed(store, "Camera", price=Decimal("99.5"))

    item = client.get("/adverts").json()["items"][0]

    assert item["owner"] == {"id": OWNER_ID, "name": "ana", "email": "ana@example.com"}
    assert item["price"] == 99.5


def test_catalog_filters_by_tag(client: TestClient, store: InMemoryAdvertStore) -> None:
    _seed(store, "First", tags=["tag1"])
    _seed(store, "Second", tags=["tag2"])

    body = client.get("/adverts", params={"tag": "tag1"}).json()

    assert [item["title"] for item in body["items"]] == ["First"]
    assert body["total"] == 1


def test_catalog_filters_by_min_price(client: TestClient, store: InMemoryAdvertStore) -> None:
    _seed(store, "Cheap", price=Decimal("100"))
    _seed(store, "Pricey", price=Decimal("200"))

    body = client.get("/adverts", params={"minPrice": "150"}).json()

    assert [item["title"] for item in body["items"]] == ["Pricey"]


def test_catalog_ignores_malformed_filters(client: TestClient, store: InMemoryAdvertStore) -> None:
    _seed(store, "Cheap", price=Decimal("100"))
    _seed(store, "Pricey", price=Decimal("200"))

    response = client.get(
        "/adverts",
        params={"minPrice": "lots", "category": "bartering", "name": "   ", "page": "zero", "limit": "-1"},
    )

    assert response.status_code == 200
    assert response.json()["total"] == 2


def test_catalog_hides_sold_adverts_but_owner_listing_shows_them(
    client: TestClient, store: InMemoryAdvertStore
) -> None:
    _seed(store, "Sofa", status="sold")
    _seed(store, "Table", status="reserved")

    catalog = client.get("/adverts").json()
    owner_listing = client.get("/adverts/user/ana").json()

    assert [item["title"] for item in catalog["items"]] == ["Table"]
    assert sorted(item["title"] for item in owner_listing["items"]) == ["Sofa", "Table"]
    assert owner_listing["total"] == 2


def test_owner_listing_for_unknown_owner_is_not_found(client: TestClient) -> None:
    response = client.get("/adverts/user/nobody")

    assert response.status_code == 404
    assert response.json() == {"kind": "not_found", "message": "owner not found"}


def test_lookup_by_slug(client: TestClient, store: InMemoryAdvertStore) -> None:
    advert = _seed(store, "Blue Kayak")

    found = client.get("/adverts/item/blue-kayak").json()
    missing = client.get("/adverts/item/red-kayak").json()

    assert found["result"]["id"] == advert["id"]
    assert missing == {"result": None}


def test_list_statuses(client: TestClient) -> None:
    response = client.get("/adverts/statuses")

    assert response.status_code == 200
    assert response.json() == {"result": ["available", "reserved", "sold"]}


def test_create_advert(client: TestClient, object_store: FakeObjectStore) -> None:
    response = client.post(
        "/adverts",
        headers=_auth("owner-token"),
        data={
            "title": "Mountain Bike",
            "description": "Full suspension",
            "category": "for_sale",
            "price": "450.50",
            "tags": ["motor", "lifestyle"],
        },
        files={"image": ("bike.jpg", b"jpeg-bytes", "image/jpeg")},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "advert created"
    advert = body["advert"]
    assert advert["slug"] == "mountain-bike"
    assert advert["status"] == "available"
    assert advert["owner_id"] == OWNER_ID
    assert advert["tags"] == ["motor", "lifestyle"]
    assert advert["price"] == 450.5
    assert object_store.objects == {advert["image_ref"]: b"jpeg-bytes"}


def test_create_advert_requires_identity(client: TestClient) -> None:
    response = client.post(
        "/adverts",
        data={"title": "Bike", "description": "x", "category": "for_sale", "price": "1"},
        files={"image": ("bike.jpg", b"jpeg-bytes", "image/jpeg")},
    )

    assert response.status_code == 401
    assert response.json()["kind"] == "unauthenticated"


def test_create_advert_with_unknown_token_is_unauthenticated(client: TestClient) -> None:
    response = client.post(
        "/adverts",
        headers=_auth("expired-token"),
        data={"title": "Bike", "description": "x", "category": "for_sale", "price": "1"},
        files={"image": ("bike.jpg", b"jpeg-bytes", "image/jpeg")},
    )

    assert response.status_code == 401


def test_create_advert_reports_missing_fields(client: TestClient, object_store: FakeObjectStore) -> None:
    response = client.post(
        "/adverts",
        headers=_auth("owner-token"),
        data={"title": "Bike", "category": "for_sale"},
    )

    assert response.status_code == 400
    assert response.json() == {
        "kind": "validation",
        "message": "missing required fields: description, price, image",
    }
    assert object_store.objects == {}


def test_create_advert_rejects_negative_price(client: TestClient) -> None:
    response = client.post(
        "/adverts",
        headers=_auth("owner-token"),
        data={"title": "Bike", "description": "x", "category": "for_sale", "price": "-5"},
        files={"image": ("bike.jpg", b"jpeg-bytes", "image/jpeg")},
    )

    assert response.status_code == 400


def test_edit_advert_regenerates_slug_on_title_change(client: TestClient, store: InMemoryAdvertStore) -> None:
    advert = _seed(store, "Old Chair")

    response = client.put(
        f"/adverts/{advert['id']}",
        headers=_auth("owner-token"),
        data={"title": "Vintage Chair", "price": "80"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "advert updated"
    assert body["advert"]["slug"] == "vintage-chair"
    assert body["advert"]["price"] == 80
    assert store.adverts[advert["id"]]["published_at"] == advert["published_at"]


def test_edit_advert_with_new_image_releases_old_one(
    client: TestClient, store: InMemoryAdvertStore, object_store: FakeObjectStore
) -> None:
    advert = _seed(store, "Guitar")

    response = client.put(
        f"/adverts/{advert['id']}",
        headers=_auth("owner-token"),
        files={"image": ("guitar.png", b"png-bytes", "image/png")},
    )

    assert response.status_code == 200
    new_key = response.json()["advert"]["image_ref"]
    assert new_key.endswith("-guitar.png")
    assert object_store.objects == {new_key: b"png-bytes"}
    assert object_store.deleted == [advert["image_ref"]]


@pytest.mark.parametrize(
    ("advert_id", "token", "expected_status"),
    [
        ("not-an-id", "owner-token", 400),
        (None, None, 401),
        (MISSING_ID, "owner-token", 404),
        (None, "intruder-token", 403),
    ],
)
def test_edit_advert_rejections(
    client: TestClient,
    store: InMemoryAdvertStore,
    advert_id: str | None,
    token: str | None,
    expected_status: int,
) -> None:
    advert = _seed(store, "Lamp")
    target = advert_id or advert["id"]

    response = client.put(
        f"/adverts/{target}",
        headers=_auth(token) if token else {},
        data={"title": "Hijacked"},
    )

    assert response.status_code == expected_status
    assert store.adverts[advert["id"]]["title"] == "Lamp"


def test_non_owner_status_change_is_forbidden(client: TestClient, store: InMemoryAdvertStore) -> None:
    advert = _seed(store, "Drone")

    response = client.patch(
        f"/adverts/{advert['id']}/status",
        headers=_auth("intruder-token"),
        json={"status": "reserved"},
    )

    assert response.status_code == 403
    assert response.json()["kind"] == "forbidden"
    assert store.adverts[advert["id"]]["status"] == "available"


def test_owner_status_change(client: TestClient, store: InMemoryAdvertStore) -> None:
    advert = _seed(store, "Drone")

    response = client.patch(
        f"/adverts/{advert['id']}/status",
        headers=_auth("owner-token"),
        json={"status": "reserved"},
    )

    assert response.status_code == 200
    assert response.json() == {"result": "advert status updated"}
    assert store.adverts[advert["id"]]["status"] == "reserved"


def test_sold_advert_status_is_terminal(client: TestClient, store: InMemoryAdvertStore) -> None:
    advert = _seed(store, "Piano", status="sold")

    response = client.patch(
        f"/adverts/{advert['id']}/status",
        headers=_auth("owner-token"),
        json={"status": "available"},
    )

    assert response.status_code == 400
    assert response.json()["kind"] == "validation"
    assert store.adverts[advert["id"]]["status"] == "sold"


@pytest.mark.parametrize("requested", ["available", "archived"])
def test_no_op_and_unknown_status_changes_are_rejected(
    client: TestClient, store: InMemoryAdvertStore, requested: str
) -> None:
    advert = _seed(store, "Tent")

    response = client.patch(
        f"/adverts/{advert['id']}/status",
        headers=_auth("owner-token"),
        json={"status": requested},
    )

    assert response.status_code == 400
    assert store.adverts[advert["id"]]["status"] == "available"


def test_status_change_requires_status_field(client: TestClient, store: InMemoryAdvertStore) -> None:
    advert = _seed(store, "Tent")

    response = client.patch(f"/adverts/{advert['id']}/status", headers=_auth("owner-token"), json={})

    assert response.status_code == 400
    assert response.json()["kind"] == "validation"


def test_owner_deletes_advert(client: TestClient, store: InMemoryAdvertStore) -> None:
    advert = _seed(store, "Bookshelf")

    response = client.delete(f"/adverts/{advert['id']}", headers=_auth("owner-token"))

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert response.text == "advert deleted"
    assert asyncio.run(store.get_advert(advert["id"])) is None
    assert client.get("/adverts/item/bookshelf").json() == {"result": None}


def test_non_owner_delete_is_forbidden(client: TestClient, store: InMemoryAdvertStore) -> None:
    advert = _seed(store, "Bookshelf")

    response = client.delete(f"/adverts/{advert['id']}", headers=_auth("intruder-token"))

    assert response.status_code == 403
    assert client.get("/adverts/item/bookshelf").json()["result"]["id"] == advert["id"]


@pytest.mark.parametrize(
    ("path", "headers", "expected_status"),
    [
        ("/adverts/42", {"Authorization": "Bearer owner-token"}, 400),
        (f"/adverts/{MISSING_ID}", {}, 401),
        (f"/adverts/{MISSING_ID}", {"Authorization": "Bearer owner-token"}, 404),
    ],
)
def test_delete_rejections(client: TestClient, path: str, headers: dict[str, str], expected_status: int) -> None:
    response = client.delete(path, headers=headers)

    assert response.status_code == expected_status


def test_unexpected_failures_surface_as_internal_errors() -> None:
    app.dependency_overrides[get_repository] = lambda: ExplodingRepository()
    try:
        with TestClient(app) as client:
            response = client.get("/adverts")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 500
    assert response.json() == {
        "kind": "internal",
        "message": "server error",
        "error": "connection reset by peer",
    }


@pytest.mark.parametrize(
    ("headers", "expected_status", "expected_kind"),
    [
        ({}, 401, "unauthenticated"),
        ({"Authorization": "Bearer intruder-token"}, 403, "forbidden"),
        ({"Authorization": "Bearer owner-token"}, 400, "validation"),
    ],
)
def test_status_change_checks_caller_before_body(
    client: TestClient,
    store: InMemoryAdvertStore,
    headers: dict[str, str],
    expected_status: int,
    expected_kind: str,
) -> None:
    advert = _seed(store, "Kettle")

    with_empty_body = client.patch(f"/adverts/{advert['id']}/status", headers=headers, json={})
    without_body = client.patch(f"/adverts/{advert['id']}/status", headers=headers)

    assert with_empty_body.status_code == expected_status
    assert with_empty_body.json()["kind"] == expected_kind
    assert without_body.status_code == expected_status
    assert store.adverts[advert["id"]]["status"] == "available"


def test_catalog_page_far_past_the_end_is_empty(client: TestClient, store: InMemoryAdvertStore) -> None:
    _seed(store, "Radio")

    response = client.get("/adverts", params={"page": "1e30"})

    assert response.status_code == 200
    body = response.json()
    assert body["items"] == []
    assert body["total"] == 1
    assert body["totalPages"] == 1
