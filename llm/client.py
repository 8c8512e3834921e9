"""
Extraction capability backed by an OpenAI-compatible chat completions gateway.
Given one chunk of a statement it returns raw reply text believed to contain JSON.
"""
import base64
import json
from typing import Any, Dict, List, Optional, Protocol

import requests
import urllib3

from core.config import Settings
from core.exceptions import ConfigurationError, ExtractionError, RateLimitError, is_rate_limit_message
from core.logger import setup_logger
from core.schema import ChunkPayload
from llm.prompts import build_system_prompt, build_user_message

logger = setup_logger(__name__)


class ExtractionCapability(Protocol):
    """Anything that turns a chunk payload into raw reply text."""

    def extract(self, payload: ChunkPayload, chunk_index: int, total_chunks: int) -> str:
        ...


def extract_message_content(completion_data: Dict[str, Any]) -> Optional[str]:
    """
    Pull the assistant text out of a gateway response.

    Supports chat-completions ``choices`` and responses-style ``output`` lists.
    """
    if "choices" in completion_data:
        try:
            content = completion_data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            content = None
        if isinstance(content, list):
            content = "".join(part.get("text", "") for part in content if isinstance(part, dict))
        if content:
            return content

    for item in completion_data.get("output", []) or []:
        if item.get("type") == "message" and item.get("role") == "assistant":
            for content_item in item.get("content", []):
                if content_item.get("type") == "output_text" and content_item.get("text"):
                    return content_item["text"]

    return None


def parse_gateway_body(body: str) -> Dict[str, Any]:
    """Parse a JSON body; NDJSON gateways yield their last object carrying content."""
    body = body.strip()
    if not body:
        raise ValueError("Empty response from gateway")
    try:
        return json.loads(body)
    except json.JSONDecodeError:
        parsed = [json.loads(line) for line in body.split("\n") if line.strip()]
        for obj in reversed(parsed):
            if isinstance(obj, dict) and extract_message_content(obj):
                return obj
        raise ValueError("Gateway returned no message content")


class GatewayExtractionClient:
    """REST client for the extraction gateway. One call per chunk, no internal retries."""

    def __init__(
        self,
        api_key: Optional[str],
        gateway_url: str,
        model: str,
        timeout: int = 120,
        verify_ssl: bool = True,
        temperature: float = 0.1,
        max_tokens: int = 8000,
    ):
        if not api_key:
            raise ConfigurationError(
                "No extraction API key provided. Set OPENAI_API_KEY or pass api_key.",
                details={"required_key": "OPENAI_API_KEY"},
            )

        self.api_key = api_key
        self.gateway_url = gateway_url
        self.model = model
        self.timeout = timeout
        self.verify_ssl = verify_ssl
        self.temperature = temperature
        self.max_tokens = max_tokens

        if not verify_ssl:
            # Internal gateways with self-signed certificates
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

        logger.info(f"Initialized extraction client with model: {self.model}, gateway: {self.gateway_url}")

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
    ) -> "GatewayExtractionClient":
        """Build a client from settings; per-request key/model override the configured ones."""
        return cls(
            api_key=api_key or settings.openai_api_key,
            gateway_url=settings.openai_gateway_url,
            model=model or settings.openai_model,
            timeout=settings.openai_timeout,
            verify_ssl=settings.openai_verify_ssl,
        )

    def build_messages(self, payload: ChunkPayload, chunk_index: int, total_chunks: int) -> List[Dict[str, Any]]:
        is_image = payload.mime_type.startswith("image/")
        user_text = build_user_message(chunk_index, total_chunks, text=payload.text, is_image=is_image)

        if not payload.is_binary:
            user_content: Any = user_text
        else:
            encoded = base64.b64encode(payload.data).decode("ascii")
            data_url = f"data:{payload.mime_type};base64,{encoded}"
            if is_image:
                attachment = {"type": "image_url", "image_url": {"url": data_url}}
            else:
                attachment = {
                    "type": "file",
                    "file": {"filename": payload.filename or "statement.pdf", "file_data": data_url},
                }
            user_content = [{"type": "text", "text": user_text}, attachment]

        return [
            {"role": "system", "content": build_system_prompt()},
            {"role": "user", "content": user_content},
        ]

    def extract(self, payload: ChunkPayload, chunk_index: int, total_chunks: int) -> str:
        """
        Send one chunk to the gateway and return the reply text.

        Args:
            payload: Chunk payload (PDF bytes, image bytes or text)
            chunk_index: 1-based chunk position
            total_chunks: Number of chunks in the document

        Returns:
            Raw assistant text

        Raises:
            RateLimitError: On HTTP 429 or a quota/rate-limit message
            ExtractionError: On any other failure
        """
        request_body: Dict[str, Any] = {
            "model": self.model,
            "messages": self.build_messages(payload, chunk_index, total_chunks),
            "max_tokens": self.max_tokens,
        }
        # GPT-5 models reject temperature
        if "gpt-5" not in self.model.lower():
            request_body["temperature"] = self.temperature

        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

        try:
            response = requests.post(
                self.gateway_url,
                headers=headers,
                data=json.dumps(request_body),
                verify=self.verify_ssl,
                timeout=self.timeout,
            )

            if response.status_code == 429:
                raise RateLimitError(
                    f"Gateway rate limit exceeded (429): {response.text[:300]}",
                    details={"status_code": 429, "chunk": chunk_index},
                )
            response.raise_for_status()

            completion_data = parse_gateway_body(response.text)
            if isinstance(completion_data, dict) and completion_data.get("error"):
                error_text = str(completion_data["error"])
                error_cls = RateLimitError if is_rate_limit_message(error_text) else ExtractionError
                raise error_cls(
                    f"Gateway returned an error: {error_text[:300]}",
                    details={"gateway_url": self.gateway_url, "chunk": chunk_index},
                )
            content = extract_message_content(completion_data)
            if not content:
                logger.error(f"Response keys: {list(completion_data.keys())}")
                raise ValueError("Unexpected response structure: no content in 'choices' or 'output'")

            if "usage" in completion_data:
                usage = completion_data["usage"]
                logger.debug(
                    f"Token usage - Input: {usage.get('prompt_tokens', 'N/A')}, "
                    f"Output: {usage.get('completion_tokens', 'N/A')}"
                )
            logger.debug(f"Chunk {chunk_index}/{total_chunks} raw reply: {content[:2000]}")
            return content

        except ExtractionError:
            raise

        except requests.exceptions.Timeout as e:
            logger.error(f"Gateway request timeout after {self.timeout}s: {e}")
            raise ExtractionError(
                f"Gateway request timeout after {self.timeout}s",
                details={"gateway_url": self.gateway_url, "timeout": self.timeout},
            )

        except requests.exceptions.HTTPError as e:
            response_text = getattr(e.response, "text", "") or ""
            error_cls = RateLimitError if is_rate_limit_message(response_text) else ExtractionError
            logger.error(f"Gateway HTTP error: {e}")
            raise error_cls(
                f"Gateway returned HTTP error: {e} {response_text[:300]}".strip(),
                details={
                    "gateway_url": self.gateway_url,
                    "status_code": getattr(e.response, "status_code", None),
                },
            )

        except requests.exceptions.RequestException as e:
            logger.error(f"Gateway request failed: {e}")
            error_cls = RateLimitError if is_rate_limit_message(str(e)) else ExtractionError
            raise error_cls(
                f"Failed to connect to gateway: {e}",
                details={"gateway_url": self.gateway_url},
            )

        except ValueError as e:
            logger.error(f"Error parsing gateway response: {e}")
            error_cls = RateLimitError if is_rate_limit_message(str(e)) else ExtractionError
            raise error_cls(f"Gateway response parsing error: {e}", details={"model": self.model})
