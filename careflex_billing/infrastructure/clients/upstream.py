"""Patient backend HTTP client for fetching the billing snapshot"""

import httpx

from careflex_billing.config import settings
from careflex_billing.domain.exceptions import UpstreamAPIError
from careflex_billing.domain.reconciliation import BillingSnapshot, extract_snapshot
from careflex_billing.infrastructure.observability.metrics import upstream_latency_histogram


class UpstreamClient:
    """Client for the external patient backend"""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.upstream_api_base).rstrip("/")
        self.timeout = timeout or settings.http_timeout_seconds
        self.dashboard_path = settings.upstream_dashboard_path
        self.transport = transport

    async def get_billing_snapshot(self, token: str) -> BillingSnapshot:
        """
        Fetch the patient dashboard and extract its billing collections.

        Raises:
            UpstreamAPIError: On timeout, HTTP errors, or a non-JSON response
            InvalidSnapshotError: Payload carries no billing data
        """
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                with upstream_latency_histogram.time():
                    response = await client.get(
                        f"{self.base_url}{self.dashboard_path}",
                        headers={"Authorization": f"Bearer {token}"},
                    )
                response.raise_for_status()
                data = response.json()

            except httpx.TimeoutException as e:
                raise UpstreamAPIError(f"Patient backend timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                raise UpstreamAPIError(f"Patient backend error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise UpstreamAPIError(f"Patient backend unreachable: {e}") from e
            except ValueError as e:
                raise UpstreamAPIError(f"Invalid JSON from patient backend: {e}") from e

        return extract_snapshot(data)
