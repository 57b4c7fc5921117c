"""HTTP client for an out-of-process proposal optimizer."""

import httpx
from loguru import logger
from pydantic import ValidationError

from custody.config.settings import settings
from custody.optimizer.types import OptimizerError, OptimizerRequest, OptimizerResponse


class HttpProposalOptimizer:
    """ProposalOptimizer that POSTs the request as JSON and parses the reply.

    Every failure mode is raised as OptimizerError; callers decide on the
    fallback.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the optimizer client.

        Args:
            url: Optimizer endpoint
            timeout: Per-request timeout in seconds. Defaults to settings.
            client: Optional pre-built client (tests pass one with a MockTransport)
        """
        if not url:
            raise ValueError("Optimizer URL must not be empty")
        self.url = url
        self.timeout = timeout or settings.optimizer_timeout_seconds
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def propose(self, request: OptimizerRequest) -> OptimizerResponse:
        """Ask the optimizer for changes.

        Args:
            request: Optimizer request payload

        Returns:
            Parsed optimizer response (possibly with no changes)

        Raises:
            OptimizerError: On timeout, transport failure, non-2xx status or
                a payload that does not match the response contract
        """
        payload = request.model_dump(mode="json")
        logger.debug(
            "Optimizer: sending request",
            url=self.url,
            disrupted_dates=len(request.disrupted_dates),
            window_start=request.window_start,
            window_end=request.window_end,
        )

        try:
            response = await self._get_client().post(self.url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            raise OptimizerError("TIMEOUT", f"Optimizer request timed out after {self.timeout}s") from e
        except httpx.HTTPStatusError as e:
            raise OptimizerError("HTTP_ERROR", f"Optimizer returned HTTP {e.response.status_code}") from e
        except httpx.RequestError as e:
            raise OptimizerError("NETWORK_ERROR", f"Optimizer unreachable: {e}") from e
        except ValueError as e:
            raise OptimizerError("INVALID_RESPONSE", "Optimizer response is not valid JSON") from e

        if not isinstance(data, dict):
            raise OptimizerError("INVALID_RESPONSE", "Optimizer response must be a JSON object")

        try:
            result = OptimizerResponse.model_validate(data)
        except ValidationError as e:
            raise OptimizerError("INVALID_RESPONSE", f"Optimizer response failed validation: {e.error_count()} error(s)") from e

        logger.debug("Optimizer: response received", change_count=len(result.changes))
        return result

    async def aclose(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
