"""
Unit tests for the Validation service API.
"""

import pytest
from fastapi.testclient import TestClient

from service_validation.app.main import ValidationService, create_app
from shared.config import get_config
from shared.errors import RuleSetError, ServiceError
from shared.test_helpers import TestDataFactory


class TestValidationService:
    """Test cases for ValidationService."""

    @pytest.fixture
    def rules_file(self, tmp_path):
        return TestDataFactory.write_json(tmp_path / "rules.json", TestDataFactory.article_rules_document())

    @pytest.fixture
    def messages_file(self, tmp_path):
        return TestDataFactory.write_json(tmp_path / "messages.json", TestDataFactory.create_error_messages())

    @pytest.fixture
    def config(self, rules_file, messages_file):
        return get_config("validation", 8080, rules_file=rules_file, error_messages_file=messages_file)

    @pytest.fixture
    def service(self, config):
        return ValidationService(config)

    @pytest.fixture
    def client(self, service):
        return TestClient(service.app)

    @pytest.fixture
    def draft(self):
        return TestDataFactory.create_draft_article()

    @pytest.fixture
    def saved(self):
        return TestDataFactory.create_saved_article()

    def test_root_endpoint(self, client):
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "validation"
        assert "validation_phases" in data["capabilities"]

    def test_health_endpoint(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["rules"] == {"schema_version": "1.0", "entity_types": ["article"]}

    def test_metrics_use_route_templates(self, client, draft):
        client.post("/validation/article/mandatory", json={"new": draft})
        text = client.get("/metrics").text
        assert 'endpoint="/validation/{entity_type}/{phase}"' in text
        assert 'endpoint="/validation/article/mandatory"' not in text

    def test_request_id_is_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

    def test_rules_loaded_at_startup(self, client):
        response = client.get("/validation-rules")
        assert response.status_code == 200
        assert response.json() == TestDataFactory.article_rules_document()

    def test_error_messages(self, client):
        response = client.get("/validation-error-messages")
        assert response.status_code == 200
        assert response.json() == TestDataFactory.create_error_messages()

    def test_replace_rules(self, client):
        document = TestDataFactory.minimal_rules_document(mandatoryRules={"id": [{}]})
        response = client.put("/validation-rules", json=document)
        assert response.status_code == 200
        assert response.json() == {"schema_version": "1.0", "entity_types": ["article"]}

        response = client.post("/validation/article/mandatory", json={"new": {}})
        assert response.json()["errors"] == ["error.validation.mandatory.article.id"]

    def test_replace_rules_rejects_invalid_document(self, client):
        response = client.put("/validation-rules", json={"entities": {}, "mandatoryRules": {"article": {}}})
        assert response.status_code == 400
        data = response.json()
        assert data["code"] == "RULE_SET_ERROR"
        assert data["details"]["path"] == "mandatoryRules.article"

        # previous rules stay active
        response = client.get("/validation-rules")
        assert "article" in response.json()["entities"]

    def test_is_mandatory(self, client, draft):
        response = client.post(
            "/validation/article/properties/subCategory/mandatory",
            json={"snapshot": draft, "permissions": []}
        )
        assert response.status_code == 200
        assert response.json() == {"entity_type": "article", "property": "subCategory", "value": True}

    def test_is_immutable(self, client, saved):
        saved["status"] = "DECOMMISSIONED"
        response = client.post("/validation/article/properties/status/immutable", json={"snapshot": saved})
        assert response.json()["value"] is True

    def test_allowed_values(self, client, draft):
        response = client.post("/validation/article/properties/status/allowed-values", json={"snapshot": draft})
        assert response.json()["allowed_values"] == ["NEW"]

    def test_allowed_values_unconstrained(self, client, saved):
        response = client.post("/validation/article/properties/status/allowed-values", json={"snapshot": saved})
        assert response.json()["allowed_values"] is None

    def test_form_state(self, client, draft):
        response = client.post(
            "/validation/article/form-state",
            json={"edited": draft, "properties": ["name", "status"]}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["properties"]["name"] == {"mandatory": True, "immutable": False, "allowed_values": None}
        assert data["properties"]["status"]["allowed_values"] == ["NEW"]

    def test_mandatory_phase(self, client):
        response = client.post("/validation/article/mandatory", json={"new": {"name": None}})
        assert response.status_code == 200
        data = response.json()
        assert data["valid"] is False
        assert data["errors"] == [
            "error.validation.mandatory.article.name",
            "error.validation.mandatory.article.number",
            "error.validation.mandatory.article.status",
        ]

    def test_content_phase_with_fixed_day(self, client, draft):
        draft["maintenanceLastDate"] = "2024-06-16"
        draft["maintenanceIntervalMonth"] = 6
        response = client.post(
            "/validation/article/content",
            json={"new": draft, "today": "2024-06-15"}
        )
        assert response.json()["errors"] == ["error.validation.content.article.maintenanceLastDate"]

    def test_update_phase(self, client, saved):
        edited = TestDataFactory.edit(saved, maintenanceIntervalMonth=3)
        response = client.post("/validation/article/update", json={"old": saved, "new": edited})
        assert response.json()["errors"] == ["error.validation.update.article.maintenanceIntervalMonth"]

    def test_immutable_phase(self, client, saved):
        edited = TestDataFactory.edit(saved, lastModifiedOn="2024-03-01T00:00:00Z")
        response = client.post("/validation/article/immutable", json={"old": saved, "new": edited})
        assert response.json()["errors"] == ["error.validation.immutable.article.lastModifiedOn"]

    def test_all_phases(self, client, saved):
        response = client.post("/validation/article/all", json={"old": saved, "new": saved})
        assert response.json() == {"entity_type": "article", "phase": "all", "valid": True, "errors": []}

    def test_unknown_phase(self, client):
        response = client.post("/validation/article/archive", json={"new": {}})
        assert response.status_code == 422

    def test_unknown_snapshot_key(self, client, draft):
        draft["colour"] = "red"
        response = client.post("/validation/article/content", json={"new": draft})
        assert response.status_code == 400
        data = response.json()
        assert data["code"] == "SNAPSHOT_ERROR"
        assert data["details"]["unknown_keys"] == ["colour"]

    def test_check_passes(self, client, draft):
        response = client.post("/validation/article/check", json={"entity": draft})
        assert response.status_code == 200
        assert response.json()["valid"] is True

    def test_check_fails_with_codes(self, client, saved):
        edited = TestDataFactory.edit(saved, status="NEW")
        response = client.post("/validation/article/check", json={"entity": edited, "saved": saved})
        assert response.status_code == 400
        data = response.json()
        assert data["code"] == "VALIDATION_ERROR"
        assert data["details"]["errors"] == ["error.validation.update.article.status"]

    def test_metrics_endpoint(self, client, draft):
        client.post("/validation/article/create", json={"new": draft})
        response = client.get("/metrics")
        assert response.status_code == 200
        assert 'validation_runs_total{phase="create"} 1.0' in response.text
        assert 'rule_set_loads_total{status="ok"} 1.0' in response.text


class TestServiceStartup:
    """Test cases for startup configuration."""

    def test_without_rules_file(self):
        client = TestClient(create_app(get_config("validation", 8080)))
        assert client.get("/validation-rules").json() == {"entities": {}}
        assert client.get("/validation-error-messages").json() == {}

        response = client.post("/validation/article/mandatory", json={"new": {"name": None}})
        assert response.json()["errors"] == []

    def test_invalid_rules_file(self, tmp_path):
        path = TestDataFactory.write_json(tmp_path / "rules.json", {"entities": {}, "contentRules": {"x": {}}})
        with pytest.raises(RuleSetError):
            ValidationService(get_config("validation", 8080, rules_file=path))

    def test_missing_messages_file(self, tmp_path):
        config = get_config("validation", 8080, error_messages_file=str(tmp_path / "missing.json"))
        with pytest.raises(ServiceError):
            ValidationService(config)
