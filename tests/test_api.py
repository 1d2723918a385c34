"""Test the HTTP surface with in-memory dependencies."""

import json
from unittest.mock import Mock

import pytest
import requests
from fastapi.testclient import TestClient

from alfred_core.api import container as api_container
from alfred_core.api.main import app
from alfred_core.config import PlatformSettings
from alfred_core.core.models import ProvisioningResult, VmStatus
from alfred_core.gateway.client import PingResult
from alfred_core.health_checker.checker import HealthMonitor
from alfred_core.provisioning.service import ProvisioningService, hash_auth_secret


@pytest.fixture
def settings():
    return PlatformSettings(
        _env_file=None,
        vm_jwt_secret="test-jwt-secret-with-enough-length-for-hs256",
        cron_secret="cron-secret",
        admin_secret="admin-secret",
    )


@pytest.fixture
def orchestrator():
    orchestrator = Mock()
    orchestrator.compute_clients = {}
    orchestrator.run.side_effect = lambda request, auth_secret: ProvisioningResult(
        success=True,
        subdomain=request.subdomain,
        vm_id="4711",
        ip_address="203.0.113.10",
    )
    return orchestrator


@pytest.fixture
def service(repository, orchestrator):
    return ProvisioningService(repository, orchestrator)


@pytest.fixture
def probe():
    gateway = Mock()
    gateway.ping_vm.return_value = PingResult(success=True, status="healthy", response_time=5.0)
    return gateway


@pytest.fixture
def monitor(repository, failure_tracker, probe):
    return HealthMonitor(repository, failure_tracker, probe, sleep=lambda seconds: None)


@pytest.fixture
def client(settings, repository, gateway, service, monitor):
    app.dependency_overrides[api_container.get_platform_settings] = lambda: settings
    app.dependency_overrides[api_container.get_user_vm_repository] = lambda: repository
    app.dependency_overrides[api_container.get_gateway] = lambda: gateway
    app.dependency_overrides[api_container.get_provisioning_service] = lambda: service
    app.dependency_overrides[api_container.get_health_monitor] = lambda: monitor

    yield TestClient(app)

    app.dependency_overrides.clear()


USER = {"X-User-Id": "user-1"}


class TestHealthEndpoint:

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}


# ============================================
# PROXY
# ============================================

class TestProxy:

    def test_requires_user(self, client, http_session):
        response = client.get("/api/proxy/vm/status")

        assert response.status_code == 401
        http_session.request.assert_not_called()

    def test_forwards_with_signed_action(self, client, make_user, http_session, http_response, signer):
        make_user()
        http_session.request.return_value = http_response(201, {"id": "wf-1"})

        response = client.post("/api/proxy/vm/workflows?limit=5", json={"name": "daily"}, headers=USER)

        assert response.status_code == 201
        assert response.json() == {"id": "wf-1"}

        method, url = http_session.request.call_args.args
        kwargs = http_session.request.call_args.kwargs
        assert method == "POST"
        assert url == "https://cozy-peanut.alfredos.site/api/workflows?limit=5"
        assert json.loads(kwargs["data"]) == {"name": "daily"}
        assert kwargs["headers"]["Content-Type"] == "application/json"

        token = kwargs["headers"]["Authorization"].split(" ", 1)[1]
        assert signer.verify(token).action == "post:/api/workflows"

    def test_not_ready(self, client, make_user, http_session):
        make_user(status=VmStatus.PROVISIONING)

        response = client.get("/api/proxy/vm/status", headers=USER)

        assert response.status_code == 503
        assert response.json() == {"error": "VM is not ready", "vmStatus": "provisioning"}
        http_session.request.assert_not_called()

    def test_no_vm(self, client, make_user):
        make_user(status=VmStatus.PENDING, subdomain=None)

        response = client.get("/api/proxy/vm/status", headers=USER)

        assert response.status_code == 404
        assert response.json() == {"error": "VM not found"}

    def test_unknown_user(self, client):
        response = client.get("/api/proxy/vm/status", headers={"X-User-Id": "nobody"})

        assert response.status_code == 404

    def test_unreachable_vm(self, client, make_user, http_session):
        make_user()
        http_session.request.side_effect = requests.exceptions.ConnectionError("refused")

        response = client.get("/api/proxy/vm/status", headers=USER)

        assert response.status_code == 502
        assert response.json() == {"error": "Proxy request failed"}

    def test_timeout(self, client, make_user, http_session):
        make_user()
        http_session.request.side_effect = requests.exceptions.Timeout()

        response = client.get("/api/proxy/vm/status", headers=USER)

        assert response.status_code == 408

    def test_vm_error_passthrough(self, client, make_user, http_session, http_response):
        make_user()
        http_session.request.return_value = http_response(422, {"error": "bad input"})

        response = client.delete("/api/proxy/vm/items/1", headers=USER)

        assert response.status_code == 422
        assert response.json() == {"error": "bad input"}

    def test_text_passthrough(self, client, make_user, http_session, http_response):
        make_user()
        http_session.request.return_value = http_response(200, text="pong")

        response = client.get("/api/proxy/vm/ping", headers=USER)

        assert response.status_code == 200
        assert response.text == "pong"

    @pytest.mark.parametrize("value", [42, True, "ok", None, [1, "two"]])
    def test_json_scalars_passthrough(self, client, make_user, http_session, http_response, value):
        make_user()
        http_session.request.return_value = http_response(
            200, text=json.dumps(value), headers={"Content-Type": "application/json"}
        )

        response = client.get("/api/proxy/vm/value", headers=USER)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/json")
        assert response.json() == value

    def test_content_type_kept(self, client, make_user, http_session, http_response):
        make_user()
        http_session.request.return_value = http_response(
            200, text="<p>hi</p>", headers={"Content-Type": "text/html; charset=utf-8"}
        )

        response = client.get("/api/proxy/vm/page", headers=USER)

        assert response.headers["content-type"] == "text/html; charset=utf-8"
        assert response.text == "<p>hi</p>"

    def test_binary_download_unchanged(self, client, make_user, http_session, http_response):
        make_user()
        blob = bytes(range(256))
        upstream = http_response(200, headers={"Content-Type": "application/octet-stream"})
        upstream._content = blob
        http_session.request.return_value = upstream

        response = client.get("/api/proxy/vm/files/blob", headers=USER)

        assert response.content == blob
        assert response.headers["content-type"] == "application/octet-stream"

    def test_binary_upload_unchanged(self, client, make_user, http_session, http_response):
        make_user()
        http_session.request.return_value = http_response(201, {"stored": True})
        blob = b"\x89PNG\r\n\x1a\n\xff\xfe\x00"

        response = client.put(
            "/api/proxy/vm/files/logo.png", content=blob, headers={**USER, "Content-Type": "image/png"}
        )

        assert response.status_code == 201
        kwargs = http_session.request.call_args.kwargs
        assert kwargs["data"] == blob
        assert kwargs["headers"]["Content-Type"] == "image/png"

    def test_text_body_is_not_reencoded(self, client, make_user, http_session, http_response):
        make_user()
        http_session.request.return_value = http_response(200, {"ok": True})

        client.post(
            "/api/proxy/vm/notes", content="héllo".encode("latin-1"),
            headers={**USER, "Content-Type": "text/plain; charset=latin-1"},
        )

        kwargs = http_session.request.call_args.kwargs
        assert kwargs["data"] == "héllo".encode("latin-1")
        assert kwargs["headers"]["Content-Type"] == "text/plain; charset=latin-1"

    def test_get_sends_no_body(self, client, make_user, http_session, http_response):
        make_user()
        http_session.request.return_value = http_response(200, {"ok": True})

        client.get("/api/proxy/vm/status", headers=USER)

        kwargs = http_session.request.call_args.kwargs
        assert "data" not in kwargs and "json" not in kwargs


class TestSkillExecute:

    def test_execute(self, client, make_user, http_session, http_response):
        make_user()
        http_session.request.return_value = http_response(200, {"execution_id": 42, "status": "queued"})

        response = client.post("/api/skills/summarize/execute", json={"input": {"text": "hi"}}, headers=USER)

        assert response.status_code == 200
        assert response.json() == {"success": True, "executionId": "42", "status": "queued"}
        assert http_session.request.call_args.kwargs["json"] == {"skill_id": "summarize", "input": {"text": "hi"}}

    def test_vm_not_ready(self, client, make_user):
        make_user(status=VmStatus.ERROR)

        response = client.post("/api/skills/summarize/execute", json={}, headers=USER)

        assert response.status_code == 400
        assert response.json() == {"error": "VM not ready"}

    def test_vm_not_provisioned(self, client, make_user):
        make_user(status=VmStatus.PENDING, subdomain=None)

        response = client.post("/api/skills/summarize/execute", json={}, headers=USER)

        assert response.status_code == 400
        assert response.json() == {"error": "VM not provisioned"}

    def test_vm_error(self, client, make_user, http_session, http_response):
        make_user()
        http_session.request.return_value = http_response(404, {"message": "unknown skill"})

        response = client.post("/api/skills/nope/execute", json={}, headers=USER)

        assert response.status_code == 404
        assert response.json() == {"error": {"message": "unknown skill"}}


# ============================================
# VM LIFECYCLE
# ============================================

class TestProvision:

    def test_starts_provisioning(self, client, make_user, repository, orchestrator):
        make_user(status=VmStatus.PENDING, subdomain=None)

        response = client.post("/api/vm/provision", headers=USER)

        body = response.json()
        assert response.status_code == 200
        assert body["success"] is True
        assert body["vmStatus"] == "provisioning"
        assert body["subdomain"]
        # Background task has run by the time TestClient returns
        orchestrator.run.assert_called_once()
        assert repository.get("user-1").vm_status == VmStatus.READY

    def test_requires_subscription(self, client, make_user, orchestrator):
        make_user(status=VmStatus.PENDING, subdomain=None, has_access=False)

        response = client.post("/api/vm/provision", headers=USER)

        assert response.status_code == 403
        assert response.json()["detail"] == "Subscription required. Please subscribe first."
        orchestrator.run.assert_not_called()

    def test_already_provisioned(self, client, make_user):
        make_user()

        response = client.post("/api/vm/provision", headers=USER)

        assert response.status_code == 400
        assert response.json()["detail"] == "VM already provisioned"

    def test_in_progress(self, client, make_user):
        make_user(status=VmStatus.PROVISIONING)

        response = client.post("/api/vm/provision", headers=USER)

        assert response.status_code == 400
        assert response.json()["detail"] == "VM provisioning already in progress"

    def test_unknown_user(self, client):
        response = client.post("/api/vm/provision", headers={"X-User-Id": "nobody"})

        assert response.status_code == 404

    def test_requires_user(self, client):
        assert client.post("/api/vm/provision").status_code == 401


class TestRegister:

    @pytest.fixture
    def awaiting(self, make_user):
        return make_user(status=VmStatus.PROVISIONING, vm_auth_secret_hash=hash_auth_secret("s3cret"))

    def test_registers(self, client, awaiting, repository):
        response = client.post(
            "/api/vm/register",
            json={"subdomain": "cozy-peanut", "authSecret": "s3cret", "publicKey": "ssh-ed25519 AAAA"},
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "VM registered successfully"}
        record = repository.get("user-1")
        assert record.vm_status == VmStatus.READY
        assert record.vm_public_key == "ssh-ed25519 AAAA"

    def test_missing_fields(self, client):
        response = client.post("/api/vm/register", json={"subdomain": "cozy-peanut"})

        assert response.status_code == 400
        assert response.json()["detail"] == "Missing required fields"

    def test_wrong_secret(self, client, awaiting):
        response = client.post("/api/vm/register", json={"subdomain": "cozy-peanut", "authSecret": "nope"})

        assert response.status_code == 401

    def test_unknown_subdomain(self, client):
        response = client.post("/api/vm/register", json={"subdomain": "ghost-vm", "authSecret": "x"})

        assert response.status_code == 404

    def test_already_registered(self, client, make_user):
        make_user(vm_auth_secret_hash=hash_auth_secret("s3cret"))

        response = client.post("/api/vm/register", json={"subdomain": "cozy-peanut", "authSecret": "s3cret"})

        assert response.status_code == 400
        assert response.json()["detail"] == "VM already registered"


class TestUserStatus:

    def test_status(self, client, make_user):
        make_user(vm_ip="203.0.113.10")

        response = client.get("/api/user/status", headers=USER)

        body = response.json()
        assert body["hasAccess"] is True
        assert body["vmStatus"] == "ready"
        assert body["dashboardUrl"] == "https://cozy-peanut.alfredos.site"
        assert body["librechatUrl"] == "https://cozy-peanut.alfredos.site/librechat"

    def test_unknown_user(self, client):
        assert client.get("/api/user/status", headers={"X-User-Id": "nobody"}).status_code == 404


# ============================================
# CRON / ADMIN
# ============================================

class TestCronHealthCheck:

    def test_rejects_bad_secret(self, client, probe):
        response = client.get("/api/cron/health-check", headers={"Authorization": "Bearer wrong"})

        assert response.status_code == 401
        probe.ping_vm.assert_not_called()

    def test_sweep(self, client, make_user):
        make_user()

        response = client.get("/api/cron/health-check", headers={"Authorization": "Bearer cron-secret"})

        body = response.json()
        assert response.status_code == 200
        assert body["success"] is True
        assert body["summary"]["total"] == 1
        assert body["summary"]["healthy"] == 1
        assert body["summary"]["markedAsError"] == 0
        assert body["checks"] is None

    def test_checks_included_when_unhealthy(self, client, make_user, probe):
        make_user()
        probe.ping_vm.return_value = PingResult(success=False, status="error", error="refused")

        body = client.get("/api/cron/health-check", headers={"Authorization": "Bearer cron-secret"}).json()

        assert body["summary"]["unhealthy"] == 1
        assert body["checks"][0]["user_id"] == "user-1"

    def test_open_without_cron_secret(self, client, settings):
        settings.cron_secret = None

        assert client.get("/api/cron/health-check").status_code == 200


class TestAdmin:

    def test_reset_vm(self, client, make_user, repository):
        make_user(status=VmStatus.PROVISIONING)

        response = client.post(
            "/api/admin/reset-vm",
            json={"secret": "admin-secret", "email": "user-1@example.com"},
        )

        assert response.status_code == 200
        assert response.json()["vmStatus"] == "error"
        assert repository.get("user-1").vm_subdomain is None

    def test_reset_requires_secret(self, client, make_user):
        make_user()

        response = client.post("/api/admin/reset-vm", json={"secret": "wrong", "email": "user-1@example.com"})

        assert response.status_code == 401

    def test_reset_requires_email(self, client):
        response = client.post("/api/admin/reset-vm", json={"secret": "admin-secret"})

        assert response.status_code == 400

    def test_reset_unknown_email(self, client):
        response = client.post("/api/admin/reset-vm", json={"secret": "admin-secret", "email": "x@example.com"})

        assert response.status_code == 404

    def test_deprovision_conflict(self, client, make_user):
        make_user(status=VmStatus.PROVISIONING)

        response = client.post("/api/admin/deprovision", json={"secret": "admin-secret", "user_id": "user-1"})

        assert response.status_code == 409

    def test_failure_stats(self, client, failure_tracker):
        failure_tracker.increment("user-1")
        headers = {"X-Admin-Secret": "admin-secret"}

        stats = client.get("/api/admin/health-failures", headers=headers).json()
        cleared = client.delete("/api/admin/health-failures", headers=headers).json()

        assert stats["failures"][0]["consecutive_failures"] == 1
        assert cleared == {"cleared": 1}

    def test_disabled_without_admin_secret(self, client, settings):
        settings.admin_secret = None

        response = client.get("/api/admin/health-failures", headers={"X-Admin-Secret": "anything"})

        assert response.status_code == 401
