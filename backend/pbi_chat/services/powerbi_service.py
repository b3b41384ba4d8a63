"""
Power BI REST client - AAD token, DAX execution, embed tokens, dataset info
"""
import logging
from typing import Dict, Any, Optional

import httpx

from pbi_chat.core.config import Settings, settings as default_settings
from pbi_chat.core.exceptions import PowerBIServiceError, ServiceNotConfiguredError

logger = logging.getLogger(__name__)


def extract_pbi_error_detail(payload: Any) -> Optional[str]:
    """
    Pull the first detail message out of a Power BI error payload

    Args:
        payload: Decoded error body, e.g. {"error": {"pbi.error": {"details": [{"detail": ...}]}}}

    Returns:
        Detail text, or None when the payload has no such entry
    """
    if not isinstance(payload, dict):
        return None
    error = payload.get("error")
    if not isinstance(error, dict):
        return None
    pbi_error = error.get("pbi.error")
    if not isinstance(pbi_error, dict):
        return None
    details = pbi_error.get("details") or []
    if not details or not isinstance(details[0], dict):
        return None

    detail = details[0].get("detail")
    # Some responses nest the message as {"type": ..., "value": ...}
    if isinstance(detail, dict):
        detail = detail.get("value")
    return detail


class PowerBIService:
    """Power BI REST API client authenticated as a service principal"""

    def __init__(
        self,
        config: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.settings = config or default_settings
        self.api_url = self.settings.POWERBI_API_URL.rstrip("/")
        self.timeout = httpx.Timeout(self.settings.POWERBI_TIMEOUT)
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    @property
    def _workspace_url(self) -> str:
        return f"{self.api_url}/groups/{self.settings.POWERBI_WORKSPACE_ID}"

    async def _request(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        **kwargs
    ) -> Dict[str, Any]:
        try:
            response = await client.request(method, url, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            try:
                payload = e.response.json()
            except ValueError:
                payload = e.response.text
            details = extract_pbi_error_detail(payload)
            logger.error(f"Power BI API error {e.response.status_code} for {method} {url}: {payload}")
            raise PowerBIServiceError(
                f"Power BI API returned {e.response.status_code}",
                status_code=e.response.status_code,
                details=details
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Power BI request failed for {method} {url}: {e}")
            raise PowerBIServiceError(f"Power BI request failed: {e}") from e
        except ValueError as e:
            # A gateway or proxy can answer 200 with an HTML page
            logger.error(f"Power BI returned a non-JSON body for {method} {url}: {e}")
            raise PowerBIServiceError("Power BI API returned an invalid response") from e

    async def _acquire_token(self, client: httpx.AsyncClient) -> str:
        url = (
            f"{self.settings.POWERBI_AUTHORITY_URL.rstrip('/')}/"
            f"{self.settings.POWERBI_TENANT_ID}/oauth2/token"
        )
        data = await self._request(
            client,
            "POST",
            url,
            data={
                "grant_type": "client_credentials",
                "client_id": self.settings.POWERBI_CLIENT_ID,
                "client_secret": self.settings.POWERBI_CLIENT_SECRET,
                "resource": self.settings.POWERBI_RESOURCE
            }
        )
        token = data.get("access_token")
        if not token:
            raise PowerBIServiceError("AAD token response did not contain an access_token")
        return token

    async def acquire_token(self) -> str:
        """Client-credentials AAD token for the Power BI API"""
        async with self._client() as client:
            return await self._acquire_token(client)

    async def execute_query(
        self,
        dax_query: str,
        impersonated_user: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Execute a DAX query against the configured dataset

        Args:
            dax_query: Validated DAX text
            impersonated_user: Effective identity for row-level security

        Returns:
            First entry of the executeQueries "results" array ({"tables": [...]})

        Raises:
            ServiceNotConfiguredError: dataset credentials are missing
            PowerBIServiceError: token or query execution failed
        """
        if not self.settings.powerbi_dataset_configured:
            raise ServiceNotConfiguredError("Power BI semantic model is not configured.")

        body: Dict[str, Any] = {
            "queries": [{"query": dax_query}],
            "serializerSettings": {"includeNulls": True}
        }
        if impersonated_user:
            body["impersonatedUserName"] = impersonated_user

        async with self._client() as client:
            token = await self._acquire_token(client)
            logger.info(f"Executing DAX query: {dax_query}")
            data = await self._request(
                client,
                "POST",
                f"{self._workspace_url}/datasets/{self.settings.POWERBI_DATASET_ID}/executeQueries",
                json=body,
                headers={"Authorization": f"Bearer {token}"}
            )

        results = data.get("results") or []
        if not results:
            raise PowerBIServiceError("executeQueries returned no results")

        result = results[0]
        # Query-level failures can come back inside a 200 response
        if "error" in result:
            raise PowerBIServiceError(
                "DAX query failed",
                details=extract_pbi_error_detail(result)
            )
        return result

    async def generate_embed_config(self) -> Dict[str, Any]:
        """
        Embed URL and token for the configured report

        Returns:
            {"embedUrl", "reportId", "token", "tokenExpiry"}
        """
        if not self.settings.powerbi_report_configured:
            raise ServiceNotConfiguredError("Power BI report is not configured.")

        report_id = self.settings.POWERBI_REPORT_ID
        async with self._client() as client:
            token = await self._acquire_token(client)
            headers = {"Authorization": f"Bearer {token}"}

            report = await self._request(
                client, "GET", f"{self._workspace_url}/reports/{report_id}", headers=headers
            )
            embed_token = await self._request(
                client,
                "POST",
                f"{self.api_url}/GenerateToken",
                headers=headers,
                json={
                    "datasets": [{"id": report.get("datasetId")}],
                    "reports": [{"id": report_id}],
                    "targetWorkspaces": [{"id": self.settings.POWERBI_WORKSPACE_ID}],
                    # Editing rights keep the filter pane usable in the embedded report
                    "allowEdit": True
                }
            )

        return {
            "embedUrl": report.get("embedUrl"),
            "reportId": report_id,
            "token": embed_token.get("token"),
            "tokenExpiry": embed_token.get("expiration")
        }

    async def get_dataset(self) -> Dict[str, Any]:
        """Metadata of the configured dataset"""
        if not self.settings.powerbi_dataset_configured:
            raise ServiceNotConfiguredError("Power BI semantic model is not configured.")

        async with self._client() as client:
            token = await self._acquire_token(client)
            return await self._request(
                client,
                "GET",
                f"{self._workspace_url}/datasets/{self.settings.POWERBI_DATASET_ID}",
                headers={"Authorization": f"Bearer {token}"}
            )
