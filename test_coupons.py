import os
from datetime import date, timedelta

import pytest

# Point the app at a throwaway database before it is imported
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite:///./test_coupons.db")
os.environ.setdefault("DATABASE_URL", TEST_DATABASE_URL)

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from coupon_engine.main import app
from coupon_engine.database import get_db, Base
from coupon_engine.models.order import Order

connect_args = {"check_same_thread": False} if TEST_DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(TEST_DATABASE_URL, connect_args=connect_args)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# Override the app's DB dependency to use the test engine/session
def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db
client = TestClient(app)

TODAY = date.today()


@pytest.fixture(autouse=True)
def setup_database():
    """Fresh schema for each test."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


def coupon_payload(**overrides):
    data = {
        "code": "SAVE10",
        "description": "10% off everything",
        "discount_type": "Percent",
        "discount_value": 10,
        "start_date": (TODAY - timedelta(days=1)).isoformat(),
        "end_date": (TODAY + timedelta(days=30)).isoformat(),
    }
    data.update(overrides)
    return data


def create_coupon(**overrides):
    response = client.post("/admin/coupons", json=coupon_payload(**overrides))
    assert response.status_code == 201, response.json()
    return response.json()


def create_order(user_id, payment_status="completed"):
    db = TestingSessionLocal()
    try:
        order = Order(user_id=user_id, payment_status=payment_status, total_amount=500)
        db.add(order)
        db.commit()
        db.refresh(order)
        return order.id
    finally:
        db.close()


def validate(code, cart_total, user_id="user-1", cart_items=None):
    return client.post("/coupons/validate", json={
        "code": code,
        "cart_total": cart_total,
        "user_id": user_id,
        "cart_items": cart_items or [],
    })


def redeem(coupon_id, user_id="user-1", discount_amount=20):
    order_id = create_order(user_id)
    response = client.post("/coupons/redemptions", json={
        "order_id": order_id,
        "coupon_id": coupon_id,
        "user_id": user_id,
        "discount_amount": discount_amount,
    })
    assert response.status_code == 201, response.json()
    return response.json()


def test_health_endpoint():
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_create_coupon_normalizes_code_and_status():
    data = create_coupon(code=" save10 ")
    assert data["code"] == "SAVE10"
    assert data["status"] == "active"
    assert data["usage_count"] == 0
    assert data["coupon_type"] == "cart_wide"


def test_create_future_coupon_is_scheduled():
    data = create_coupon(start_date=(TODAY + timedelta(days=3)).isoformat())
    assert data["status"] == "scheduled"


def test_create_rejects_bad_code():
    response = client.post("/admin/coupons", json=coupon_payload(code="NO WAY"))
    assert response.status_code == 400
    assert response.json()["error"]["detail"] == "Coupon code can only contain letters, numbers, and hyphens"


def test_create_rejects_duplicate_code():
    create_coupon()
    response = client.post("/admin/coupons", json=coupon_payload(code="save10"))
    assert response.status_code == 409


@pytest.mark.parametrize("overrides", [
    {"discount_value": 150},
    {"coupon_type": "product_specific"},
    {"coupon_type": "category_based"},
    {"coupon_type": "bogo", "eligible_product_ids": ["p1"]},
    {"end_date": (TODAY - timedelta(days=5)).isoformat()},
])
def test_create_rejects_invalid_rules(overrides):
    response = client.post("/admin/coupons", json=coupon_payload(**overrides))
    assert response.status_code == 400


def test_validate_cart_wide_coupon():
    create_coupon()
    response = validate("save10", 200)
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["data"]["discount"] == 20
    assert data["data"]["savings_text"] == "You saved ₹20"
    assert data["data"]["coupon"]["code"] == "SAVE10"


def test_validate_invalid_format():
    response = validate("ab", 200)
    assert response.status_code == 400
    detail = response.json()["error"]["detail"]
    assert detail["code"] == "INVALID_FORMAT"
    assert detail["message"] == "Coupon code too short"


def test_validate_unknown_code():
    response = validate("NOPE-123", 200)
    assert response.status_code == 400
    assert response.json()["error"]["detail"]["code"] == "COUPON_NOT_FOUND"


def test_validate_requires_positive_cart_total():
    create_coupon()
    assert validate("SAVE10", 0).status_code == 422


def test_validate_minimum_order_shortfall():
    create_coupon(min_order_value=500)
    response = validate("SAVE10", 320)
    assert response.status_code == 400
    detail = response.json()["error"]["detail"]
    assert detail["code"] == "MIN_ORDER_NOT_MET"
    assert detail["shortfall"] == 180
    assert detail["message"] == "Minimum order value of ₹500 required"


def test_validate_first_order_only():
    create_coupon(code="FIRST50", first_order_only=True)
    assert validate("FIRST50", 300, user_id="new-user").status_code == 200

    create_order("returning-user")
    response = validate("FIRST50", 300, user_id="returning-user")
    assert response.json()["error"]["detail"]["code"] == "FIRST_ORDER_ONLY"


def test_pending_orders_do_not_count_as_previous_orders():
    create_coupon(code="FIRST50", first_order_only=True)
    create_order("user-1", payment_status="pending")
    assert validate("FIRST50", 300).status_code == 200


def test_validate_category_coupon_uses_line_categories():
    create_coupon(code="TEA20", coupon_type="category_based", eligible_category_ids=["cat-tea"], discount_value=20)
    cart_items = [
        {"type": "product", "product_id": "p1", "quantity": 2, "price": 150, "category_id": "cat-tea"},
        {"type": "bundle", "bundle_id": "b1", "quantity": 1, "price": 400, "category_id": "cat-coffee"},
    ]
    response = validate("TEA20", 700, cart_items=cart_items)
    assert response.status_code == 200
    assert response.json()["data"]["discount"] == 60
    assert response.json()["data"]["coupon"]["coupon_type"] == "category_based"


def test_validate_bogo_coupon():
    create_coupon(code="B2G1", coupon_type="bogo", eligible_product_ids=["b1", "b2", "b3"],
                  bogo_buy_quantity=2, bogo_get_quantity=1)
    cart_items = [
        {"type": "bundle", "bundle_id": "b1", "quantity": 1, "price": 50},
        {"type": "bundle", "bundle_id": "b2", "quantity": 1, "price": 80},
        {"type": "bundle", "bundle_id": "b3", "quantity": 1, "price": 120},
    ]
    response = validate("B2G1", 250, cart_items=cart_items)
    assert response.json()["data"]["discount"] == 50

    response = validate("B2G1", 250, cart_items=cart_items[:1])
    assert response.json()["error"]["detail"]["code"] == "BOGO_NOT_MET"


def test_validate_item_coupon_without_cart_items():
    create_coupon(code="TEA20", coupon_type="product_specific", eligible_product_ids=["p1"])
    response = validate("TEA20", 300)
    assert response.json()["error"]["detail"]["code"] == "CART_ITEMS_REQUIRED"


def test_redemption_increments_usage_and_enforces_per_user_limit():
    coupon = create_coupon()
    redemption = redeem(coupon["id"])
    assert redemption["usage_count"] == 1

    response = validate("SAVE10", 200)
    detail = response.json()["error"]["detail"]
    assert detail["code"] == "USER_LIMIT_REACHED"
    assert detail["message"] == "You have already used this coupon 1 time"

    # Other users are unaffected
    assert validate("SAVE10", 200, user_id="user-2").status_code == 200


def test_global_usage_limit():
    coupon = create_coupon(usage_limit=1, usage_per_user=5)
    redeem(coupon["id"], user_id="user-1")
    response = validate("SAVE10", 200, user_id="user-2")
    assert response.json()["error"]["detail"]["code"] == "USAGE_LIMIT_REACHED"


def test_redemption_for_unknown_order():
    coupon = create_coupon()
    response = client.post("/coupons/redemptions", json={
        "order_id": 999, "coupon_id": coupon["id"], "user_id": "user-1", "discount_amount": 10,
    })
    assert response.status_code == 404


def test_redemption_recorded_once_per_order():
    coupon = create_coupon(usage_per_user=5)
    order_id = create_order("user-1")
    payload = {"order_id": order_id, "coupon_id": coupon["id"], "user_id": "user-1", "discount_amount": 20}

    assert client.post("/coupons/redemptions", json=payload).status_code == 201
    response = client.post("/coupons/redemptions", json=payload)
    assert response.status_code == 409
    assert response.json()["error"]["detail"] == "Coupon already redeemed for this order"

    stats = client.get(f"/admin/coupons/{coupon['id']}/stats").json()
    assert stats["total_usage"] == 1
    assert client.get(f"/admin/coupons/{coupon['id']}").json()["usage_count"] == 1


def test_database_failure_is_a_server_error():
    class BrokenSession:
        def query(self, *args, **kwargs):
            raise OperationalError("SELECT 1", {}, Exception("database is unreachable"))

        def close(self):
            pass

    def broken_get_db():
        db = BrokenSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = broken_get_db
    try:
        response = validate("SAVE10", 200)
    finally:
        app.dependency_overrides[get_db] = override_get_db

    assert response.status_code == 500
    detail = response.json()["error"]["detail"]
    assert detail["code"] == "SERVER_ERROR"
    assert detail["message"] == "Unable to process coupon request. Please try again."


def test_check_usage():
    coupon = create_coupon(usage_per_user=2)
    redeem(coupon["id"])
    response = client.get("/coupons/save10/check-usage", params={"user_id": "user-1"})
    assert response.status_code == 200
    data = response.json()
    assert data == {
        "coupon_code": "SAVE10",
        "usage_count": 1,
        "usage_limit": 2,
        "can_use": True,
        "remaining_uses": 1,
    }
    assert client.get("/coupons/MISSING/check-usage", params={"user_id": "user-1"}).status_code == 404


def test_active_coupons_locked_and_unlocked():
    create_coupon(code="SMALL", min_order_value=100)
    create_coupon(code="BIG", min_order_value=1000)
    create_coupon(code="OFF", start_date=(TODAY + timedelta(days=2)).isoformat())

    response = client.get("/coupons/active", params={"cart_total": 500})
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    assert [c["code"] for c in data["all_coupons"]] == ["SMALL", "BIG"]
    assert [c["code"] for c in data["unlocked_coupons"]] == ["SMALL"]
    assert [c["code"] for c in data["locked_coupons"]] == ["BIG"]
    assert data["locked_coupons"][0]["unlock_amount"] == 500


def test_active_coupons_hide_exhausted_for_user():
    coupon = create_coupon()
    create_coupon(code="OTHER")
    redeem(coupon["id"])

    codes = [c["code"] for c in client.get("/coupons/active", params={"user_id": "user-1"}).json()["all_coupons"]]
    assert codes == ["OTHER"]
    guest_codes = [c["code"] for c in client.get("/coupons/active").json()["all_coupons"]]
    assert sorted(guest_codes) == ["OTHER", "SAVE10"]


def test_toggle_status():
    coupon = create_coupon()
    response = client.patch(f"/admin/coupons/{coupon['id']}/toggle")
    assert response.json()["status"] == "inactive"

    detail = validate("SAVE10", 200).json()["error"]["detail"]
    assert detail["code"] == "COUPON_INVALID"
    assert detail["message"] == "This coupon is currently inactive"

    response = client.patch(f"/admin/coupons/{coupon['id']}/toggle")
    assert response.json()["status"] == "active"


def test_update_to_future_start_schedules_coupon():
    coupon = create_coupon()
    response = client.put(f"/admin/coupons/{coupon['id']}", json={
        "start_date": (TODAY + timedelta(days=7)).isoformat(),
    })
    assert response.status_code == 200
    assert response.json()["status"] == "scheduled"


def test_update_clears_optional_limits():
    coupon = create_coupon(min_order_value=300)
    response = client.put(f"/admin/coupons/{coupon['id']}", json={"min_order_value": None, "description": "Open to all"})
    assert response.status_code == 200
    assert response.json()["min_order_value"] is None
    assert response.json()["description"] == "Open to all"


def test_update_missing_coupon():
    assert client.put("/admin/coupons/999", json={"description": "x"}).status_code == 404


def test_refresh_status_expires_and_activates():
    create_coupon(code="OLD", start_date=(TODAY - timedelta(days=10)).isoformat(),
                  end_date=(TODAY - timedelta(days=1)).isoformat())
    create_coupon(code="CURRENT")

    response = client.post("/admin/coupons/refresh-status")
    assert response.json() == {"updated": 1}

    statuses = {c["code"]: c["status"] for c in client.get("/admin/coupons").json()["coupons"]}
    assert statuses == {"OLD": "expired", "CURRENT": "active"}


def test_list_coupons_search_and_pagination():
    for code in ("ALPHA", "BETA", "GAMMA"):
        create_coupon(code=code, description=f"{code.lower()} deal")

    data = client.get("/admin/coupons", params={"limit": 2}).json()
    assert data["total"] == 3
    assert data["total_pages"] == 2
    assert len(data["coupons"]) == 2

    data = client.get("/admin/coupons", params={"search": "bet"}).json()
    assert [c["code"] for c in data["coupons"]] == ["BETA"]


def test_delete_rejected_after_use():
    coupon = create_coupon()
    redeem(coupon["id"])
    response = client.delete(f"/admin/coupons/{coupon['id']}")
    assert response.status_code == 400


def test_delete_unused_coupon():
    coupon = create_coupon()
    assert client.delete(f"/admin/coupons/{coupon['id']}").status_code == 204
    assert client.get(f"/admin/coupons/{coupon['id']}").status_code == 404


def test_coupon_detail_includes_stats():
    coupon = create_coupon(usage_per_user=3)
    redeem(coupon["id"], discount_amount=20)
    redeem(coupon["id"], discount_amount=31)

    response = client.get(f"/admin/coupons/{coupon['id']}")
    assert response.status_code == 200
    data = response.json()
    assert data["usage_count"] == 2
    assert data["stats"] == {"total_usage": 2, "total_discount": 51, "average_discount": 26}
    assert client.get(f"/admin/coupons/{coupon['id']}/stats").json()["total_usage"] == 2
