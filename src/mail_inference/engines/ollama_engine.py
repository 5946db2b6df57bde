"""
Ollama engine implementation for on-device generation.

Talks to the Ollama daemon on the local machine using httpx AsyncClient.
Supports:
- Token streaming (NDJSON lines from /api/generate)
- Classification via structured output (JSON Schema ``format`` parameter)
- Native embeddings via /api/embed when an embedding model is configured
- Model introspection used by ModelManager (installed / loaded / warm-up)

This is the serialized engine class: one call in flight per process.
"""

import asyncio
import json
import time
from typing import Any, AsyncIterator, Dict, Optional
import httpx
import jsonschema
import structlog

from mail_inference.engines.base import BaseInferenceEngine, EngineCapabilities
from mail_inference.engines.exceptions import (
    EngineConnectionError,
    EngineGenerationError,
    EngineTimeoutError,
    ModelNotAvailableError,
    ParseFailure,
)
from mail_inference.monitoring.metrics import engine_latency_seconds


logger = structlog.get_logger(__name__)


CLASSIFY_INSTRUCTION = (
    "Classify the text between the markers into exactly one of these categories: "
    "{categories}.\n"
    'Respond only with JSON of the form {{"label": "<category>"}}.\n\n'
    "<<<TEXT\n{text}\nTEXT>>>"
)


def classification_schema(categories: list[str]) -> Dict[str, Any]:
    """JSON Schema constraining classification output to ``categories``."""
    return {
        "type": "object",
        "properties": {"label": {"type": "string", "enum": categories}},
        "required": ["label"],
    }


def parse_classification_json(content: str, categories: list[str]) -> str:
    """
    Parse and validate structured classification output.

    Raises:
        ParseFailure: Content is not JSON or does not match the schema
    """
    if not content or not content.strip():
        raise ParseFailure("Classification output is empty", raw_content=content)
    try:
        parsed = json.loads(content)
    except json.JSONDecodeError as e:
        raise ParseFailure(f"Classification output is not JSON: {e.msg}", raw_content=content) from e
    try:
        jsonschema.validate(instance=parsed, schema=classification_schema(categories))
    except jsonschema.ValidationError as e:
        raise ParseFailure(f"Classification output violates schema: {e.message}", raw_content=content) from e
    return parsed["label"]


class OllamaEngine(BaseInferenceEngine):
    """
    Ollama-backed generative engine.

    API Endpoints:
    - POST /api/generate: streaming generation, structured classification, warm-up
    - POST /api/embed: embeddings
    - GET /api/tags: installed models
    - GET /api/ps: models currently loaded in memory
    """

    name = "ollama"

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "qwen2.5:3b",
        embedding_model: str = "",
        timeout: int = 60,
        max_retries: int = 2,
        temperature: float = 0.1,
        keep_alive: str = "10m",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize Ollama engine.

        Args:
            base_url: Ollama daemon URL (local machine)
            model: Generative model name
            embedding_model: Embedding model name; empty disables native embeddings
            timeout: Request timeout in seconds
            max_retries: Connection-level retries for non-streaming calls
            temperature: Sampling temperature
            keep_alive: How long Ollama keeps the model loaded after a call
            transport: Optional httpx transport (used by tests)
        """
        super().__init__(
            EngineCapabilities(
                can_classify=True,
                can_generate=True,
                can_embed=bool(embedding_model),
                serialized=True,
            )
        )
        self.base_url = base_url.rstrip('/')
        self.model = model
        self.embedding_model = embedding_model
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.temperature = temperature
        self.keep_alive = keep_alive
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        logger.info(
            "Ollama engine initialized",
            base_url=self.base_url,
            model=model,
            embedding_model=embedding_model or None,
            timeout=timeout,
            max_retries=self.max_retries,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            )
            logger.debug("Created new httpx AsyncClient")
        return self._client

    async def _post_json(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        POST a JSON payload with connection-level retries.

        Retries timeouts, network errors and 5xx responses with exponential
        backoff (2s, 4s, ...). 404 means the model is missing; other 4xx are
        not retryable.
        """
        last_error: Optional[Exception] = None
        for attempt in range(1, self.max_retries + 1):
            try:
                client = await self._get_client()
                response = await client.post(path, json=payload)
                response.raise_for_status()
                data = response.json()
                if not isinstance(data, dict):
                    raise EngineGenerationError(
                        "Ollama response is not a JSON object",
                        details={"path": path, "type": type(data).__name__}
                    )
                return data

            except httpx.TimeoutException as e:
                logger.warning("Ollama request timeout", path=path, attempt=attempt, error=str(e))
                last_error = EngineTimeoutError(
                    f"Request timeout after {self.timeout}s",
                    details={"attempt": attempt, "path": path}
                )

            except httpx.HTTPStatusError as e:
                status_code = e.response.status_code
                logger.error("Ollama HTTP error", path=path, status_code=status_code, attempt=attempt)
                if status_code == 404:
                    raise ModelNotAvailableError(
                        f"Model not found: {payload.get('model')}",
                        details={"model": payload.get("model"), "status": status_code}
                    )
                if status_code < 500:
                    raise EngineGenerationError(
                        f"Ollama client error: {status_code}",
                        details={"status": status_code, "error": e.response.text}
                    )
                last_error = EngineGenerationError(
                    f"Ollama server error: {status_code}",
                    details={"status": status_code, "error": e.response.text}
                )

            except httpx.TransportError as e:
                logger.warning("Ollama network error", path=path, attempt=attempt, error=str(e))
                last_error = EngineConnectionError(
                    f"Network error: {e}",
                    details={"attempt": attempt, "error_type": type(e).__name__}
                )

            except json.JSONDecodeError as e:
                raise EngineGenerationError(
                    "Invalid JSON response from Ollama",
                    details={"parse_error": str(e)}
                ) from e

            if attempt < self.max_retries:
                backoff = 2 ** attempt
                logger.info("Retrying Ollama request", path=path, backoff_seconds=backoff)
                await asyncio.sleep(backoff)

        raise last_error

    async def is_available(self) -> bool:
        """Available when the daemon answers and the model is installed."""
        try:
            return self.model in await self.list_models()
        except EngineConnectionError as e:
            logger.warning("Ollama availability check failed", error=str(e))
            return False

    async def _classify(self, text: str, categories: list[str]) -> str:
        start = time.perf_counter()
        payload = {
            "model": self.model,
            "prompt": CLASSIFY_INSTRUCTION.format(categories=", ".join(categories), text=text),
            "stream": False,
            "format": classification_schema(categories),
            "keep_alive": self.keep_alive,
            "options": {"temperature": 0.0},
        }
        data = await self._post_json("/api/generate", payload)
        engine_latency_seconds.labels(engine=self.name, operation="classify").observe(
            time.perf_counter() - start
        )

        try:
            label = parse_classification_json(data.get("response", ""), categories)
        except ParseFailure as e:
            raise EngineGenerationError(
                str(e),
                details={"raw_content": e.raw_content[:200]}
            ) from e

        logger.debug("Ollama classification complete", label=label)
        return label

    async def _generate(self, prompt: str, max_tokens: int) -> AsyncIterator[str]:
        """
        Stream tokens from POST /api/generate.

        Each NDJSON line carries a ``response`` fragment; the final line has
        ``done: true``. Streaming calls are not retried once started.
        """
        start = time.perf_counter()
        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": True,
            "keep_alive": self.keep_alive,
            "options": {
                "temperature": self.temperature,
                "num_predict": max_tokens,
            },
        }

        logger.info(
            "Starting Ollama generation stream",
            model=self.model,
            prompt_length=len(prompt),
            max_tokens=max_tokens,
        )

        client = await self._get_client()
        try:
            async with client.stream("POST", "/api/generate", json=payload) as response:
                if response.status_code >= 400:
                    await response.aread()
                    if response.status_code == 404:
                        raise ModelNotAvailableError(
                            f"Model not found: {self.model}",
                            details={"model": self.model, "status": response.status_code}
                        )
                    raise EngineGenerationError(
                        f"Ollama generation failed: {response.status_code}",
                        details={"status": response.status_code, "error": response.text}
                    )

                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    chunk = json.loads(line)
                    if not isinstance(chunk, dict):
                        raise EngineGenerationError(
                            "Ollama stream chunk is not a JSON object",
                            details={"chunk": line[:200]}
                        )
                    if "error" in chunk:
                        raise EngineGenerationError(
                            "Ollama reported a generation error",
                            details={"error": chunk["error"]}
                        )
                    token = chunk.get("response", "")
                    if token:
                        yield token
                    if chunk.get("done"):
                        break

        except httpx.TimeoutException as e:
            raise EngineTimeoutError(
                f"Generation timeout after {self.timeout}s",
                details={"error": str(e)}
            ) from e
        except httpx.TransportError as e:
            raise EngineConnectionError(
                f"Network error during generation: {e}",
                details={"error_type": type(e).__name__}
            ) from e
        except json.JSONDecodeError as e:
            raise EngineGenerationError(
                "Invalid stream chunk from Ollama",
                details={"parse_error": str(e)}
            ) from e
        finally:
            engine_latency_seconds.labels(engine=self.name, operation="generate").observe(
                time.perf_counter() - start
            )

    async def _embed(self, text: str) -> list[float]:
        payload = {"model": self.embedding_model, "input": text, "keep_alive": self.keep_alive}
        data = await self._post_json("/api/embed", payload)
        embeddings = data.get("embeddings") or []
        if not embeddings:
            return []
        try:
            return [float(v) for v in embeddings[0]]
        except (TypeError, ValueError) as e:
            raise EngineGenerationError(
                "Malformed embedding vector from Ollama",
                details={"error": str(e)}
            ) from e

    async def list_models(self) -> list[str]:
        """
        List installed models via GET /api/tags.

        Raises:
            EngineConnectionError: Daemon unreachable or bad response
        """
        try:
            client = await self._get_client()
            response = await client.get("/api/tags", timeout=5.0)
            response.raise_for_status()
            return [m["name"] for m in response.json().get("models", [])]
        except (httpx.HTTPError, ValueError, KeyError, TypeError, AttributeError) as e:
            raise EngineConnectionError(
                f"Failed to list models: {e}",
                details={"error_type": type(e).__name__}
            ) from e

    async def running_models(self) -> list[str]:
        """
        List models currently loaded in memory via GET /api/ps.

        Raises:
            EngineConnectionError: Daemon unreachable or bad response
        """
        try:
            client = await self._get_client()
            response = await client.get("/api/ps", timeout=5.0)
            response.raise_for_status()
            return [m["name"] for m in response.json().get("models", [])]
        except (httpx.HTTPError, ValueError, KeyError, TypeError, AttributeError) as e:
            raise EngineConnectionError(
                f"Failed to list running models: {e}",
                details={"error_type": type(e).__name__}
            ) from e

    async def load_model(self) -> None:
        """
        Ask Ollama to load the model into memory.

        A generate request without a prompt only loads the model.
        """
        logger.info("Loading Ollama model", model=self.model)
        await self._post_json(
            "/api/generate",
            {"model": self.model, "keep_alive": self.keep_alive},
        )

    async def close(self):
        """Close the HTTP client connection."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            logger.debug("Closed Ollama client connection")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
