"""
End-to-end tests for AdminActivityMiddleware.

Stub business routes are mounted on the real application; the audit
record is written by a background task that TestClient runs before
returning, so it can be queried right after the request.
"""

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from adminlog.models.audit_record import AuditRecord
from adminlog.tests.conftest import ADMIN, RETAILER

PRODUCT_ID = "63f1a2b3c4d5e6f708192a3b"


@pytest.fixture
def business_app(app):
    """Application with stub product and order routes."""

    @app.put("/api/products/{product_id}")
    async def update_product(product_id: str, payload: dict):
        return {"id": product_id, "name": payload.get("name")}

    @app.get("/api/products")
    async def list_products():
        return []

    @app.delete("/api/orders/{order_id}")
    async def delete_order(order_id: str):
        raise HTTPException(status_code=404, detail="Order not found")

    @app.post("/api/auth/login")
    async def login():
        return {"token": "t"}

    return app


@pytest.fixture
def business_client(business_app):
    with TestClient(business_app) as test_client:
        yield test_client


def _records(db_session):
    db_session.expire_all()
    return db_session.query(AuditRecord).order_by(AuditRecord.timestamp).all()


class TestRecordedRequests:

    def test_update_product_scenario(self, business_client, admin_headers, db_session):
        resp = business_client.put(
            f"/api/products/{PRODUCT_ID}?notify=false",
            json={"name": "X", "password": "ignored"},
            headers={**admin_headers, "User-Agent": "pytest-agent", "X-Forwarded-For": "203.0.113.7, 10.0.0.1"},
        )
        assert resp.status_code == 200
        assert resp.json() == {"id": PRODUCT_ID, "name": "X"}

        records = _records(db_session)
        assert len(records) == 1
        record = records[0]
        assert record.action == "UPDATE"
        assert record.entity == "Products"
        assert record.entity_id == PRODUCT_ID
        assert record.severity == "INFO"
        assert record.actor_id == ADMIN.id
        assert record.actor_name == ADMIN.name
        assert record.actor_email == ADMIN.email
        assert record.actor_role == "admin"
        assert record.ip_address == "203.0.113.7"
        assert record.user_agent == "pytest-agent"
        assert record.details["body"] == {"name": "X", "password": "***"}
        assert record.details["query"] == {"notify": "false"}
        assert record.details["status_code"] == 200

    @pytest.mark.security
    def test_raw_password_never_stored(self, business_client, admin_headers, db_session):
        business_client.put(
            f"/api/products/{PRODUCT_ID}",
            json={"name": "X", "password": "hunter2", "token": "secret-token"},
            headers=admin_headers,
        )
        stored = str(_records(db_session)[0].details)
        assert "hunter2" not in stored
        assert "secret-token" not in stored

    def test_chunked_body_recorded(self, business_client, admin_headers, db_session):
        def chunks():
            yield b'{"name": "Y", '
            yield b'"password": "hunter2"}'

        resp = business_client.put(
            f"/api/products/{PRODUCT_ID}",
            content=chunks(),
            headers={**admin_headers, "Content-Type": "application/json"},
        )
        assert resp.status_code == 200
        assert resp.json()["name"] == "Y"

        record = _records(db_session)[0]
        assert record.details["body"] == {"name": "Y", "password": "***"}

    def test_failed_request_recorded_as_warning(self, business_client, admin_headers, db_session):
        resp = business_client.delete("/api/orders/77", headers=admin_headers)
        assert resp.status_code == 404

        record = _records(db_session)[0]
        assert record.action == "DELETE"
        assert record.entity == "Orders"
        assert record.entity_id == "77"
        assert record.severity == "WARNING"
        assert record.details["status_message"] == "Not Found"

    def test_export_read_recorded(self, business_client, admin_headers, db_session):
        resp = business_client.get("/api/logs/export?format=csv", headers=admin_headers)
        assert resp.status_code == 200

        record = _records(db_session)[0]
        assert record.action == "EXPORT"
        assert record.entity == "Logs"


class TestSkippedRequests:

    def test_non_admin_not_recorded(self, business_client, auth_headers, user_headers, db_session):
        business_client.put(f"/api/products/{PRODUCT_ID}", json={"name": "X"}, headers=user_headers)
        business_client.put(
            f"/api/products/{PRODUCT_ID}", json={"name": "X"}, headers=auth_headers(RETAILER),
        )
        assert _records(db_session) == []

    def test_anonymous_not_recorded(self, business_client, db_session):
        business_client.put(f"/api/products/{PRODUCT_ID}", json={"name": "X"})
        assert _records(db_session) == []

    def test_plain_read_not_recorded(self, business_client, admin_headers, db_session):
        assert business_client.get("/api/products", headers=admin_headers).status_code == 200
        assert _records(db_session) == []

    def test_auth_endpoint_not_recorded(self, business_client, admin_headers, db_session):
        business_client.post("/api/auth/login", json={"password": "x"}, headers=admin_headers)
        assert _records(db_session) == []


class TestFailureIsolation:

    def test_write_failure_does_not_affect_response(self, business_app, admin_headers):
        def broken_factory():
            raise OperationalError("connect", {}, Exception("database unavailable"))

        with TestClient(business_app) as test_client:
            business_app.state.session_factory = broken_factory
            resp = test_client.put(
                f"/api/products/{PRODUCT_ID}", json={"name": "X"}, headers=admin_headers,
            )

        assert resp.status_code == 200
        assert resp.json()["name"] == "X"

    def test_unconfigured_database_skips_recording(self, business_app, admin_headers):
        with TestClient(business_app) as test_client:
            business_app.state.session_factory = None
            resp = test_client.put(
                f"/api/products/{PRODUCT_ID}", json={"name": "X"}, headers=admin_headers,
            )
        assert resp.status_code == 200
