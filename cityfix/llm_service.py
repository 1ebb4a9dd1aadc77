import logging
from typing import Optional

import httpx

from cityfix.config import Settings
from cityfix.schemas import Issue

logger = logging.getLogger(__name__)

NO_CONTENT = "No content found in the response"


class LLMServiceError(Exception):
    """Base exception for completion endpoint failures."""

    pass


class ServiceUnavailable(LLMServiceError):
    """The completion endpoint could not be reached (network error, timeout)."""

    def __init__(self, cause: Exception):
        super().__init__(f"Completion service unavailable: {cause}")
        self.cause = cause


class UpstreamError(LLMServiceError):
    """The completion endpoint answered with a non-2xx status or an unreadable body."""

    def __init__(self, status_code: int, body: str):
        super().__init__(f"Completion service returned HTTP {status_code}: {body}")
        self.status_code = status_code
        self.body = body


class CompletionClient:
    """
    Client for a llama.cpp-style completion endpoint.

    The endpoint receives {prompt, n_predict, temperature, stop} and answers
    with {"content": ...} (or {"text": ...}). The httpx client is owned by the
    caller so a single connection pool lives for the whole process.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        url: str,
        n_predict: int = 256,
        temperature: float = 0.7,
        stop: Optional[list[str]] = None,
        timeout: float = 30.0,
    ):
        self.http_client = http_client
        self.url = url
        self.n_predict = n_predict
        self.temperature = temperature
        self.stop = stop if stop is not None else []
        self.timeout = timeout

    async def generate(self, prompt: str) -> str:
        """
        Send a prompt to the completion endpoint.

        Returns:
            The generated text, untouched

        Raises:
            ServiceUnavailable: network failure or timeout
            UpstreamError: non-2xx response or a body that is not JSON
        """
        payload = {
            "prompt": prompt,
            "n_predict": self.n_predict,
            "temperature": self.temperature,
            "stop": self.stop,
        }

        try:
            response = await self.http_client.post(self.url, json=payload, timeout=self.timeout)
        except httpx.HTTPError as e:
            logger.error(f"Completion request to {self.url} failed: {e!r}")
            raise ServiceUnavailable(e) from e

        if not response.is_success:
            logger.error(
                f"Completion service returned {response.status_code}",
                extra={"body": response.text[:500]},
            )
            raise UpstreamError(response.status_code, response.text)

        try:
            result = response.json()
        except ValueError as e:
            logger.error(f"Completion service returned a non-JSON body: {e}")
            raise UpstreamError(response.status_code, response.text) from e

        logger.debug(f"Completion response: {result}")
        return extract_text(result)


def extract_text(result: object) -> str:
    """Pull the generated text out of a completion response body."""
    if isinstance(result, dict):
        if result.get("content"):
            return result["content"]
        if result.get("text"):
            return result["text"]
    return NO_CONTENT


def build_solution_prompt(issue: Issue) -> str:
    return f"""You are an assistant for a municipal maintenance office. A citizen reported the following problem.

Title: {issue.title}
Description: {issue.description}
Category: {issue.category}
Current status: {issue.status}

Describe, in a few sentences, how the municipality solved this problem. Answer with the solution description only."""


def build_summary_prompt(description: str) -> str:
    return f"""Summarize the following citizen report in one or two sentences. Answer with the summary only.

Report: {description}"""


def build_completion_client(settings: Settings, http_client: httpx.AsyncClient) -> CompletionClient:
    """Factory wiring the completion client from settings."""
    logger.info(f"Using completion endpoint {settings.llm_completion_url}")
    return CompletionClient(
        http_client,
        settings.llm_completion_url,
        n_predict=settings.llm_n_predict,
        temperature=settings.llm_temperature,
        stop=settings.llm_stop,
        timeout=settings.llm_timeout,
    )
