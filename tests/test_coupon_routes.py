from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import Base, get_db
from app.core.rate_limiter import InMemoryRateLimiterService
from app.deps import require_admin_user
from app.main import coupon_request_validation_handler
from app.middleware.rate_limit import CouponRateLimitMiddleware
from app.models.discount import Discount, DiscountRedemption
from app.routers.coupons import get_coupon_validator, router as coupons_router
from app.services.coupons import CouponValidator
from app.services.discount_store import DiscountRecord, DiscountStore, InMemoryDiscountStore
from app.services.errors import DiscountStoreError
from tests.fixtures_data import BIGORDER_ROW, FIXED_NOW, SAVE20_ROW, WELCOME10_ROW


class _BrokenStore(DiscountStore):
    def find_active_by_code(self, code):
        raise DiscountStoreError("statement timeout")


def _build_client(store: DiscountStore | None = None) -> TestClient:
    if store is None:
        records = [
            DiscountRecord.from_mapping(WELCOME10_ROW),
            DiscountRecord.from_mapping(SAVE20_ROW),
            DiscountRecord.from_mapping(BIGORDER_ROW),
            DiscountRecord.from_mapping(
                {**SAVE20_ROW, "id": "d-expired5", "code": "EXPIRED5", "expires_at": FIXED_NOW - timedelta(days=1)}
            ),
        ]
        store = InMemoryDiscountStore(records)

    app = FastAPI()
    app.add_exception_handler(RequestValidationError, coupon_request_validation_handler)
    app.include_router(coupons_router)
    app.dependency_overrides[get_coupon_validator] = lambda: CouponValidator(store, clock=lambda: FIXED_NOW)
    return TestClient(app)


def test_validate_returns_discount_for_valid_code():
    client = _build_client()

    response = client.post("/api/coupons/validate", json={"code": "welcome10", "orderTotal": 60})

    assert response.status_code == 200
    assert response.json() == {
        "valid": True,
        "coupon_id": "d-welcome10",
        "discount_amount": 6.0,
        "type": "percentage",
        "value": 10.0,
        "description": "10% off your first order",
    }


def test_validate_clamps_fixed_discount():
    client = _build_client()

    response = client.post("/api/coupons/validate", json={"code": "SAVE20", "orderTotal": 15})

    assert response.status_code == 200
    assert response.json()["discount_amount"] == 15.0


def test_validate_business_rejections_are_200():
    client = _build_client()

    expired = client.post("/api/coupons/validate", json={"code": "EXPIRED5", "orderTotal": 40})
    minimum = client.post("/api/coupons/validate", json={"code": "BIGORDER", "orderTotal": 80})
    unknown = client.post("/api/coupons/validate", json={"code": "NOPE", "orderTotal": 80})

    assert expired.status_code == 200
    assert expired.json() == {"valid": False, "error": "This coupon has expired"}
    assert minimum.json() == {"valid": False, "error": "Minimum order amount of $100 required"}
    assert unknown.json() == {"valid": False, "error": "Invalid or inactive coupon code"}


def test_validate_requires_code_and_total():
    client = _build_client()

    missing_code = client.post("/api/coupons/validate", json={"orderTotal": 10})
    blank_code = client.post("/api/coupons/validate", json={"code": "  ", "orderTotal": 10})
    missing_total = client.post("/api/coupons/validate", json={"code": "SAVE20"})
    no_body = client.post("/api/coupons/validate")

    for response in (missing_code, blank_code, missing_total, no_body):
        assert response.status_code == 400
        assert response.json() == {"error": "Coupon code and order total are required"}


def test_validate_rejects_invalid_totals():
    client = _build_client()

    for total in (-5, "abc", True):
        response = client.post("/api/coupons/validate", json={"code": "SAVE20", "orderTotal": total})
        assert response.status_code == 400
        assert response.json() == {"error": "Order total must be a non-negative number"}


def test_validate_rejects_malformed_json():
    client = _build_client()

    response = client.post(
        "/api/coupons/validate",
        content="{not json",
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid request body"}


def test_validate_store_failure_is_500_not_invalid():
    client = _build_client(_BrokenStore())

    response = client.post("/api/coupons/validate", json={"code": "SAVE20", "orderTotal": 10})

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error"}


def _build_limited_client(limiter: InMemoryRateLimiterService, trusted_proxies=()) -> TestClient:
    app = FastAPI()
    app.include_router(coupons_router)
    app.add_middleware(
        CouponRateLimitMiddleware,
        rate_limiter=limiter,
        trusted_proxies=trusted_proxies,
    )
    store = InMemoryDiscountStore([DiscountRecord.from_mapping(SAVE20_ROW)])
    app.dependency_overrides[get_coupon_validator] = lambda: CouponValidator(store, clock=lambda: FIXED_NOW)
    return TestClient(app)


def test_validate_is_rate_limited_per_client():
    client = _build_limited_client(InMemoryRateLimiterService(limit=2, window_seconds=60))
    payload = {"code": "SAVE20", "orderTotal": 30}

    first = client.post("/api/coupons/validate", json=payload)
    second = client.post("/api/coupons/validate", json=payload)
    third = client.post("/api/coupons/validate", json=payload)

    assert first.status_code == 200
    assert first.headers["X-RateLimit-Remaining"] == "1"
    assert second.status_code == 200
    assert third.status_code == 429
    assert third.json() == {"error": "Too many requests"}
    assert int(third.headers["Retry-After"]) >= 1


def test_rotating_forwarded_for_does_not_reset_the_limit():
    limiter = InMemoryRateLimiterService(limit=2, window_seconds=60)
    client = _build_limited_client(limiter)
    payload = {"code": "SAVE20", "orderTotal": 30}

    statuses = [
        client.post(
            "/api/coupons/validate",
            json=payload,
            headers={"X-Forwarded-For": f"198.51.100.{attempt}"},
        ).status_code
        for attempt in range(10)
    ]

    assert statuses[:2] == [200, 200]
    assert set(statuses[2:]) == {429}
    assert len(limiter) == 1


def test_forwarded_for_is_used_behind_trusted_proxy():
    client = _build_limited_client(
        InMemoryRateLimiterService(limit=1, window_seconds=60),
        trusted_proxies=("testclient",),
    )
    payload = {"code": "SAVE20", "orderTotal": 30}

    first = client.post("/api/coupons/validate", json=payload, headers={"X-Forwarded-For": "203.0.113.9"})
    repeat = client.post("/api/coupons/validate", json=payload, headers={"X-Forwarded-For": "203.0.113.9"})
    other = client.post("/api/coupons/validate", json=payload, headers={"X-Forwarded-For": "203.0.113.10"})

    assert first.status_code == 200
    assert repeat.status_code == 429
    assert other.status_code == 200


def test_idle_buckets_are_swept_after_a_window():
    now = [1000.0]
    limiter = InMemoryRateLimiterService(limit=5, window_seconds=60, clock=lambda: now[0])

    for attempt in range(20):
        limiter.check(client_key=f"198.51.100.{attempt}", endpoint="/api/coupons/validate")
    assert len(limiter) == 20

    now[0] += 61
    decision = limiter.check(client_key="203.0.113.9", endpoint="/api/coupons/validate")

    assert decision.allowed is True
    assert len(limiter) == 1


def _build_redeem_client(role: str = "staff"):
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    db = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    db.add(
        Discount(
            id="d-limited",
            code="LIMITED",
            discount_type="fixed_amount",
            discount_value=Decimal("5.00"),
            usage_limit=1,
        )
    )
    db.commit()

    app = FastAPI()
    app.include_router(coupons_router)
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[require_admin_user] = lambda: SimpleNamespace(id=3, role=role, active=True)
    return TestClient(app), db


def test_redeem_counts_usage_once_and_enforces_limit():
    client, db = _build_redeem_client()
    payload = {"coupon_id": "d-limited", "order_id": "order-1", "discount_amount": "5.00"}

    first = client.post("/api/coupons/redeem", json=payload)
    repeat = client.post("/api/coupons/redeem", json=payload)
    over_limit = client.post("/api/coupons/redeem", json={**payload, "order_id": "order-2"})

    assert first.status_code == 200
    assert first.json()["order_id"] == "order-1"
    assert repeat.status_code == 409
    assert repeat.json()["detail"] == "Coupon already redeemed for this order"
    assert over_limit.status_code == 409
    assert over_limit.json()["detail"] == "Coupon usage limit exceeded"
    assert db.query(Discount).filter(Discount.id == "d-limited").one().usage_count == 1
    assert db.query(DiscountRedemption).count() == 1


def test_redeem_unknown_coupon_is_404():
    client, _ = _build_redeem_client()

    response = client.post(
        "/api/coupons/redeem",
        json={"coupon_id": "missing", "order_id": "order-1", "discount_amount": "1.00"},
    )

    assert response.status_code == 404


def test_redeem_requires_manage_orders_permission():
    client, _ = _build_redeem_client(role="viewer")

    response = client.post(
        "/api/coupons/redeem",
        json={"coupon_id": "d-limited", "order_id": "order-1", "discount_amount": "5.00"},
    )

    assert response.status_code == 403
    assert response.json()["detail"] == "Insufficient permissions"
