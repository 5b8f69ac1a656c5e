from decimal import Decimal

from storefront.common import database
from storefront.seed import SAMPLE_PRODUCTS, seed_catalog

from conftest import register


async def test_products_list_hides_inactive(client, make_product):
    await make_product(name="Visible")
    await make_product(name="Retired", is_active=False)

    names = [p["name"] for p in await (await client.get("/api/products")).get_json()]
    assert names == ["Visible"]


async def test_product_detail(client, make_product):
    prod = await make_product(name="Karité", price="24.99", original_price=None, images=["/img/1.png", "/img/2.png"])
    resp = await client.get(f"/api/products/{prod['id']}")
    assert resp.status_code == 200
    data = await resp.get_json()
    assert data["price"] == "24.99"
    assert data["images"] == ["/img/1.png", "/img/2.png"]

    assert (await client.get("/api/products/4242")).status_code == 404


async def test_featured_products_capped_at_eight(client, make_product):
    for i in range(10):
        await make_product(name=f"F{i}", is_featured=True)
    await make_product(name="Plain")

    featured = await (await client.get("/api/products/featured")).get_json()
    assert len(featured) == 8
    assert all(p["is_featured"] for p in featured)


async def test_categories_and_their_products(client, make_product):
    cat = await database.create_category(name="Gamme Bébé", slug="karite-bebe")
    await make_product(name="Bébé Doux", category_id=cat["id"])
    await make_product(name="Autre")

    cats = await (await client.get("/api/categories")).get_json()
    assert [c["slug"] for c in cats] == ["karite-bebe"]

    products = await (await client.get(f"/api/categories/{cat['id']}/products")).get_json()
    assert [p["name"] for p in products] == ["Bébé Doux"]
    assert (await client.get("/api/categories/999/products")).status_code == 404


async def test_review_updates_product_rating(client, make_product):
    prod = await make_product(rating=Decimal("4.00"), review_count=1)
    await register(client)

    resp = await client.post(f"/api/products/{prod['id']}/reviews", json={"rating": 5, "comment": "Excellent"})
    assert resp.status_code == 200
    review = await resp.get_json()
    assert review["rating"] == 5

    updated = await (await client.get(f"/api/products/{prod['id']}")).get_json()
    assert updated["review_count"] == 2
    assert updated["rating"] == "4.50"

    reviews = await (await client.get(f"/api/products/{prod['id']}/reviews")).get_json()
    assert [r["comment"] for r in reviews] == ["Excellent"]


async def test_review_validation_and_auth(client, make_product):
    prod = await make_product()
    url = f"/api/products/{prod['id']}/reviews"
    assert (await client.post(url, json={"rating": 4})).status_code == 401

    await register(client)
    assert (await client.post(url, json={"rating": 6})).status_code == 400
    assert (await client.post("/api/products/999/reviews", json={"rating": 3})).status_code == 404


async def test_seed_catalog_runs_once(app):
    assert await seed_catalog() == len(SAMPLE_PRODUCTS)
    assert await seed_catalog() == 0
    assert len(await database.fetch_categories()) == 4
    assert await database.count_products() == len(SAMPLE_PRODUCTS)


async def test_unknown_route_is_json_404(client):
    resp = await client.get("/api/nope")
    assert resp.status_code == 404
    assert "message" in await resp.get_json()


async def test_health_and_metrics(client):
    assert (await client.get("/health")).status_code == 200
    metrics = await client.get("/metrics")
    assert b"http_requests_total" in await metrics.get_data()


def test_entrypoint_leaves_logging_to_app_startup():
    from quart import Quart

    from storefront import main

    assert isinstance(main.app, Quart)
    assert "logging" not in vars(main)
    assert "/api/products" in {rule.rule for rule in main.app.url_map.iter_rules()}
