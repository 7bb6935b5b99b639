"""
Tests for the request classifier.

Pure derivation rules: skip rules, action mapping, entity and entity id
heuristics, severity and credential masking.
"""

import pytest

from adminlog.audit.classifier import (
    RequestSnapshot,
    classify_request,
    derive_action,
    derive_entity,
    derive_entity_id,
    derive_severity,
    mask_sensitive,
    should_log,
)
from adminlog.models.audit_record import HttpRequestDetails, Severity

PRODUCT_ID = "63f1a2b3c4d5e6f708192a3b"


class TestShouldLog:

    @pytest.mark.parametrize("method", ["POST", "PUT", "PATCH", "DELETE"])
    def test_mutations_are_logged(self, method):
        assert should_log(method, "/api/products") is True

    @pytest.mark.parametrize("method", ["GET", "HEAD", "OPTIONS"])
    def test_safe_reads_are_skipped(self, method):
        assert should_log(method, "/api/products") is False

    def test_export_read_is_logged(self):
        assert should_log("GET", "/api/logs/export") is True

    def test_report_read_is_logged(self):
        assert should_log("GET", "/api/orders/reports/monthly") is True

    @pytest.mark.parametrize("path", ["/api/auth/login", "/api/users/login", "/api/auth/register"])
    def test_auth_endpoints_are_skipped(self, path):
        assert should_log("POST", path) is False


class TestDeriveAction:

    @pytest.mark.parametrize("method,expected", [
        ("POST", "CREATE"),
        ("PUT", "UPDATE"),
        ("PATCH", "UPDATE"),
        ("DELETE", "DELETE"),
        ("post", "CREATE"),
    ])
    def test_method_mapping(self, method, expected):
        assert derive_action(method, "/api/products") == expected

    def test_unmapped_method_is_verbatim(self):
        assert derive_action("PURGE", "/api/cache") == "PURGE"

    def test_export_marker_overrides(self):
        assert derive_action("GET", "/api/products/export") == "EXPORT"
        assert derive_action("POST", "/api/logs/export") == "EXPORT"


class TestDeriveEntity:

    def test_first_segment_after_prefix_capitalized(self):
        assert derive_entity(f"/api/products/{PRODUCT_ID}") == "Products"

    def test_version_segment_skipped(self):
        assert derive_entity("/api/v1/orders/12") == "Orders"

    def test_custom_prefix(self):
        assert derive_entity("/admin-api/warranties", api_prefix="/admin-api") == "Warranties"

    def test_path_without_prefix(self):
        assert derive_entity("/quotes/5") == "Quotes"

    def test_bare_prefix_has_no_entity(self):
        assert derive_entity("/api") is None
        assert derive_entity("/api/") is None


class TestDeriveEntityId:

    def test_path_param_wins(self):
        entity_id = derive_entity_id(
            f"/api/products/{PRODUCT_ID}", {"id": "from-param"}, {"id": "from-body"},
        )
        assert entity_id == "from-param"

    def test_suffixed_path_param(self):
        assert derive_entity_id("/api/orders/x", {"order_id": "o-9"}, None) == "o-9"

    def test_identifier_segment(self):
        assert derive_entity_id(f"/api/products/{PRODUCT_ID}", {}, None) == PRODUCT_ID

    def test_uuid_and_integer_segments(self):
        uuid_value = "0b5c1f4e-2a1d-4a7e-9b57-1f7bde6c2a10"
        assert derive_entity_id(f"/api/quotes/{uuid_value}/approve", {}, None) == uuid_value
        assert derive_entity_id("/api/invoices/1042", {}, None) == "1042"

    def test_non_identifier_segment_falls_back_to_body(self):
        assert derive_entity_id("/api/products/bulk", {}, {"_id": "b-1"}) == "b-1"

    def test_absent_everywhere(self):
        assert derive_entity_id("/api/products", {}, {"name": "X"}) is None
        assert derive_entity_id("/api/products", {}, ["not", "a", "dict"]) is None


class TestMasking:

    def test_password_and_token_masked(self):
        body = {"name": "X", "password": "hunter2", "Token": "abc"}
        masked = mask_sensitive(body)
        assert masked == {"name": "X", "password": "***", "Token": "***"}

    def test_original_body_untouched(self):
        body = {"password": "hunter2"}
        mask_sensitive(body)
        assert body["password"] == "hunter2"

    def test_shallow_clone_only(self):
        body = {"profile": {"password": "nested"}}
        masked = mask_sensitive(body)
        assert masked["profile"] == {"password": "nested"}

    def test_custom_fields_and_mask(self):
        masked = mask_sensitive({"apiKey": "k", "name": "n"}, ["apikey"], "[redacted]")
        assert masked == {"apiKey": "[redacted]", "name": "n"}

    def test_non_object_body_is_not_recorded(self):
        assert mask_sensitive(None) is None
        assert mask_sensitive(["a"]) is None


class TestClassifyRequest:

    def test_update_product_scenario(self):
        snapshot = RequestSnapshot(
            method="PUT",
            path=f"/api/products/{PRODUCT_ID}",
            status_code=200,
            query={"notify": "false"},
            body={"name": "X", "password": "ignored"},
        )
        result = classify_request(snapshot)

        assert result.action == "UPDATE"
        assert result.entity == "Products"
        assert result.entity_id == PRODUCT_ID
        assert result.severity == Severity.INFO
        assert isinstance(result.details, HttpRequestDetails)
        assert result.details.body == {"name": "X", "password": "***"}
        assert result.details.query == {"notify": "false"}
        assert result.details.status_code == 200
        assert result.details.status_message == "OK"

    def test_skipped_request_returns_none(self):
        assert classify_request(RequestSnapshot(method="GET", path="/api/products", status_code=200)) is None

    def test_deterministic(self):
        snapshot = RequestSnapshot(method="DELETE", path="/api/orders/77", status_code=204)
        assert classify_request(snapshot) == classify_request(snapshot)

    @pytest.mark.parametrize("status_code,expected", [
        (200, Severity.INFO),
        (302, Severity.INFO),
        (404, Severity.WARNING),
        (503, Severity.ERROR),
    ])
    def test_severity_from_status(self, status_code, expected):
        assert derive_severity(status_code) == expected

    def test_unknown_status_has_no_phrase(self):
        snapshot = RequestSnapshot(method="POST", path="/api/orders", status_code=599)
        assert classify_request(snapshot).details.status_message is None
