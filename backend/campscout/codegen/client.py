"""Code generation service client.

Posts a GenerationContext to the configured endpoint and expects
``{"code": "..."}`` back. Any transport or protocol failure yields None,
which the pipeline treats as a generation failure.
"""

import logging
import re

import httpx

from campscout.config import get_settings
from campscout.schemas.extraction import GenerationContext

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\n(.*?)\n```\s*$", re.DOTALL)


def strip_code_fences(text: str) -> str:
    """Drop a surrounding markdown code fence, if the model added one."""
    text = text.strip()
    match = _FENCE_RE.match(text)
    return match.group(1) if match else text


class CodeGenerationClient:
    """HTTP client for the extraction code generation service."""

    def __init__(self, url: str | None = None, api_key: str | None = None, timeout: float | None = None):
        settings = get_settings()
        self.url = url or settings.codegen_service_url
        self.api_key = api_key if api_key is not None else settings.codegen_api_key
        self.timeout = timeout or settings.codegen_timeout

    def _get_headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def generate(self, context: GenerationContext) -> str | None:
        """Request extraction code for one attempt. Returns None on failure."""
        logger.info(
            f"Requesting code for {context.source_url} "
            f"(version {context.code_version}, {len(context.feedback_history)} feedback entries)"
        )
        try:
            response = httpx.post(
                self.url,
                json=context.model_dump(mode="json"),
                headers=self._get_headers(),
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException:
            logger.error(f"Code generation timed out after {self.timeout}s for {context.source_url}")
            return None
        except httpx.HTTPStatusError as e:
            logger.error(f"Code generation returned HTTP {e.response.status_code} for {context.source_url}")
            return None
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Code generation failed for {context.source_url}: {e}")
            return None

        code = data.get("code") if isinstance(data, dict) else None
        if not code or not isinstance(code, str) or not code.strip():
            logger.warning(f"Code generation returned no code for {context.source_url}")
            return None
        return strip_code_fences(code)
