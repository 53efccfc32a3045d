"""
Agent Client: one bounded call to the configured LLM provider.

Wraps a ProviderGateway with a per-attempt timeout and a small retry budget
for transient failures. Malformed or empty replies are never retried here;
they are the adapters' problem.
"""

import asyncio
import logging
import time
from typing import Any, Dict, Optional

from ..core.config import settings
from ..errors import EmptyResponseError, ProviderError
from ..llm_providers import ProviderConfig
from .gateway import ProviderGateway, build_gateway
from .results import AgentRole

logger = logging.getLogger(__name__)


class AgentClient:
    """Sends one role-tagged request to an LLM and returns its text."""

    def __init__(
        self,
        provider: ProviderConfig,
        gateway: Optional[ProviderGateway] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff: Optional[float] = None,
    ):
        self.provider = provider
        self.gateway = gateway or build_gateway(provider)
        self.timeout = settings.AGENT_TIMEOUT_SECONDS if timeout is None else timeout
        self.max_retries = settings.AGENT_MAX_RETRIES if max_retries is None else max_retries
        self.backoff = settings.AGENT_RETRY_BACKOFF_SECONDS if backoff is None else backoff

    async def invoke(
        self,
        role: AgentRole,
        system_text: str,
        content: str,
        sampling: Dict[str, Any],
    ) -> str:
        """
        Call the provider, retrying transient failures.

        Args:
            role: Agent making the call (used by simulation and logs)
            system_text: Role instructions
            content: User message for this step
            sampling: temperature / max_tokens for the role

        Returns:
            Raw response text (not yet sanitized)

        Raises:
            ProviderError: Non-transient failure, or transient failures
                outlasting the retry budget. Anything the gateway raises
                besides EmptyResponseError ends up here, with the original
                exception as ``cause``
            EmptyResponseError: Response carried no text
        """
        provider_name = self.provider.provider.value
        attempt = 0
        while True:
            attempt += 1
            start = time.time()
            try:
                text = await asyncio.wait_for(
                    self.gateway.call(
                        provider_name,
                        self.provider.model_name,
                        system_text,
                        content,
                        sampling,
                        role=role,
                    ),
                    timeout=self.timeout,
                )
            except asyncio.TimeoutError as e:
                error = ProviderError(
                    f"{provider_name} call for {role.value} timed out after {self.timeout}s",
                    cause=e,
                    transient=True,
                )
            except EmptyResponseError:
                logger.warning(f"{role.value}: {provider_name} returned an empty response")
                raise
            except ProviderError as e:
                error = e
            except (ConnectionError, OSError) as e:
                error = ProviderError(
                    f"{provider_name} network error for {role.value}: {type(e).__name__}",
                    cause=e,
                    transient=True,
                )
            except Exception as e:
                error = ProviderError(f"{provider_name} call for {role.value} failed: {type(e).__name__}", cause=e)
            else:
                latency_ms = int((time.time() - start) * 1000)
                logger.info(f"{role.value}: {provider_name} responded in {latency_ms}ms ({len(text)} chars)")
                return text

            if not error.transient or attempt > self.max_retries:
                logger.error(f"{role.value}: provider call failed after {attempt} attempt(s): {error}")
                raise error

            delay = self.backoff * (2 ** (attempt - 1))
            logger.warning(
                f"{role.value}: transient provider error on attempt {attempt}, retrying in {delay:.1f}s: {error}"
            )
            await asyncio.sleep(delay)
