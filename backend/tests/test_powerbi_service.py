"""Power BI REST client tests."""

import json

import httpx
import pytest

from pbi_chat.core.exceptions import PowerBIServiceError, ServiceNotConfiguredError
from pbi_chat.services.powerbi_service import PowerBIService, extract_pbi_error_detail

TOKEN_URL = "https://login.microsoftonline.com/tenant-id/oauth2/token"
API = "https://api.powerbi.com/v1.0/myorg"


class FakePowerBI:
    """Routes requests to canned responses and records them."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, str(request.url))
        if key not in self.routes:
            return httpx.Response(404, json={"error": {"code": "NotFound"}})
        status, payload = self.routes[key]
        return httpx.Response(status, json=payload)

    def last(self, method, url):
        for request in reversed(self.requests):
            if request.method == method and str(request.url) == url:
                return request
        raise AssertionError(f"No {method} {url} request")


def service_for(settings, routes):
    fake = FakePowerBI({("POST", TOKEN_URL): (200, {"access_token": "aad-token"}), **routes})
    return PowerBIService(settings, transport=httpx.MockTransport(fake)), fake


class TestExtractPbiErrorDetail:

    def test_detail_string(self):
        payload = {"error": {"pbi.error": {"details": [{"detail": "Column 'X' not found"}]}}}
        assert extract_pbi_error_detail(payload) == "Column 'X' not found"

    def test_detail_value_object(self):
        payload = {"error": {"pbi.error": {"details": [{"detail": {"type": 1, "value": "Syntax error"}}]}}}
        assert extract_pbi_error_detail(payload) == "Syntax error"

    @pytest.mark.parametrize("payload", [None, "text", {}, {"error": {"code": "x"}}, {"error": {"pbi.error": {}}}])
    def test_no_detail(self, payload):
        assert extract_pbi_error_detail(payload) is None


class TestExecuteQuery:

    QUERY_URL = f"{API}/groups/workspace-id/datasets/dataset-id/executeQueries"

    @pytest.mark.asyncio
    async def test_returns_first_result(self, configured_settings, sample_query_results):
        service, fake = service_for(configured_settings, {
            ("POST", self.QUERY_URL): (200, {"results": [sample_query_results]}),
        })

        result = await service.execute_query("EVALUATE sales")

        assert result == sample_query_results
        token_request = fake.last("POST", TOKEN_URL)
        form = token_request.content.decode()
        assert "grant_type=client_credentials" in form
        assert "client_id=client-id" in form

        query_request = fake.last("POST", self.QUERY_URL)
        assert query_request.headers["Authorization"] == "Bearer aad-token"
        body = json.loads(query_request.content)
        assert body["queries"] == [{"query": "EVALUATE sales"}]
        assert body["serializerSettings"] == {"includeNulls": True}
        assert "impersonatedUserName" not in body

    @pytest.mark.asyncio
    async def test_impersonation(self, configured_settings, sample_query_results):
        service, fake = service_for(configured_settings, {
            ("POST", self.QUERY_URL): (200, {"results": [sample_query_results]}),
        })

        await service.execute_query("EVALUATE sales", impersonated_user="ana@contoso.com")

        body = json.loads(fake.last("POST", self.QUERY_URL).content)
        assert body["impersonatedUserName"] == "ana@contoso.com"

    @pytest.mark.asyncio
    async def test_error_details_are_extracted(self, configured_settings):
        error = {"error": {"code": "DatasetExecuteQueriesError",
                           "pbi.error": {"details": [{"detail": "Column 'Amount' not found"}]}}}
        service, _ = service_for(configured_settings, {("POST", self.QUERY_URL): (400, error)})

        with pytest.raises(PowerBIServiceError) as exc_info:
            await service.execute_query("EVALUATE sales")

        assert exc_info.value.status_code == 400
        assert exc_info.value.details == "Column 'Amount' not found"

    @pytest.mark.asyncio
    async def test_token_failure(self, configured_settings):
        service, _ = service_for(configured_settings, {("POST", TOKEN_URL): (401, {"error": "invalid_client"})})

        with pytest.raises(PowerBIServiceError) as exc_info:
            await service.execute_query("EVALUATE sales")
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_empty_results(self, configured_settings):
        service, _ = service_for(configured_settings, {("POST", self.QUERY_URL): (200, {"results": []})})

        with pytest.raises(PowerBIServiceError):
            await service.execute_query("EVALUATE sales")

    @pytest.mark.asyncio
    async def test_non_json_body(self, configured_settings):
        def handler(request: httpx.Request) -> httpx.Response:
            if str(request.url) == TOKEN_URL:
                return httpx.Response(200, json={"access_token": "aad-token"})
            return httpx.Response(200, text="<html>gateway</html>")

        service = PowerBIService(configured_settings, transport=httpx.MockTransport(handler))

        with pytest.raises(PowerBIServiceError, match="invalid response"):
            await service.execute_query("EVALUATE sales")

    @pytest.mark.asyncio
    async def test_not_configured(self, chat_only_settings):
        service = PowerBIService(chat_only_settings)
        with pytest.raises(ServiceNotConfiguredError):
            await service.execute_query("EVALUATE sales")


class TestEmbedAndDataset:

    @pytest.mark.asyncio
    async def test_generate_embed_config(self, configured_settings):
        service, fake = service_for(configured_settings, {
            ("GET", f"{API}/groups/workspace-id/reports/report-id"): (
                200, {"id": "report-id", "datasetId": "dataset-id", "embedUrl": "https://embed/url"}
            ),
            ("POST", f"{API}/GenerateToken"): (200, {"token": "embed-token", "expiration": "2026-10-19T14:00:00Z"}),
        })

        config = await service.generate_embed_config()

        assert config == {
            "embedUrl": "https://embed/url",
            "reportId": "report-id",
            "token": "embed-token",
            "tokenExpiry": "2026-10-19T14:00:00Z",
        }
        body = json.loads(fake.last("POST", f"{API}/GenerateToken").content)
        assert body["datasets"] == [{"id": "dataset-id"}]
        assert body["targetWorkspaces"] == [{"id": "workspace-id"}]
        assert body["allowEdit"] is True

    @pytest.mark.asyncio
    async def test_get_dataset(self, configured_settings):
        service, _ = service_for(configured_settings, {
            ("GET", f"{API}/groups/workspace-id/datasets/dataset-id"): (200, {"id": "dataset-id", "name": "Sales"}),
        })

        assert (await service.get_dataset())["name"] == "Sales"

    @pytest.mark.asyncio
    async def test_acquire_token(self, configured_settings):
        service, _ = service_for(configured_settings, {})
        assert await service.acquire_token() == "aad-token"
