"""
Inference repository: turns mail requests into engine calls.

Operations and their failure semantics:
- categorize: always resolves to a label (UNCATEGORIZED on any failure)
- summarize: the only operation that raises (EngineUnavailable, engine errors)
- smart_reply: races generation against a deadline; [] on timeout or failure
- generate_embedding: native vector or hash fallback; never fails

Everything except summarization feeds UI affordances that must never block
on AI failure.
"""

import asyncio
import structlog

from mail_inference.config import Settings
from mail_inference.engines.base import BaseInferenceEngine, read_stream
from mail_inference.engines.exceptions import (
    CapabilityUnsupported,
    EngineUnavailable,
    GenerationTimeout,
    InferenceEngineError,
)
from mail_inference.engines.resolver import EngineResolver
from mail_inference.inference.embedding import hash_embedding
from mail_inference.inference.strategies import (
    CategorizationStrategy,
    ClassifyStrategy,
    EmbeddingStrategy,
    GenerateStrategy,
    HashEmbeddingStrategy,
    NativeEmbeddingStrategy,
)
from mail_inference.models.enums import CategoryLabel
from mail_inference.models.mail import MailItem, MailThread
from mail_inference.monitoring.metrics import (
    engine_fallbacks_total,
    inference_requests_total,
    smart_reply_timeouts_total,
)
from mail_inference.prompts.builder import PromptTemplates
from mail_inference.prompts.parsing import parse_smart_reply_response, parse_summary_response

logger = structlog.get_logger(__name__)


class InferenceRepository:
    """
    Request/response AI operations over the resolved engine.

    Attributes:
        resolver: Engine resolver (memoized engine handle)
        prompts: Prompt templates
        settings: Application settings (token budgets, deadline)
        categorization_strategies: Ordered categorization chain
        embedding_strategies: Ordered embedding chain
    """

    def __init__(
        self,
        resolver: EngineResolver,
        prompts: PromptTemplates,
        settings: Settings,
    ):
        self.resolver = resolver
        self.prompts = prompts
        self.settings = settings

        self.categorization_strategies: list[CategorizationStrategy] = [
            ClassifyStrategy(prompts),
            GenerateStrategy(
                prompts,
                max_tokens=settings.CATEGORIZE_MAX_TOKENS,
                char_budget=settings.CATEGORIZE_OUTPUT_BUDGET_CHARS,
            ),
        ]
        self.embedding_strategies: list[EmbeddingStrategy] = [
            NativeEmbeddingStrategy(),
            HashEmbeddingStrategy(dimension=settings.EMBEDDING_DIMENSION),
        ]

    async def categorize(self, item: MailItem) -> CategoryLabel:
        """
        Categorize one item.

        Does not filter already-labeled items (the scheduler does) and does
        not write the label back (CategorizationService does).
        """
        engine = await self.resolver.resolve_generative_engine()
        if not await engine.is_available():
            inference_requests_total.labels(operation="categorize", outcome="unavailable").inc()
            return CategoryLabel.UNCATEGORIZED

        for strategy in self.categorization_strategies:
            try:
                label = await strategy.execute(engine, item)
            except (CapabilityUnsupported, InferenceEngineError) as e:
                engine_fallbacks_total.labels(operation="categorize", strategy=strategy.name).inc()
                logger.info(
                    "Categorization strategy failed, falling back",
                    item_id=item.id,
                    strategy=strategy.name,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                continue
            except Exception as e:
                engine_fallbacks_total.labels(operation="categorize", strategy=strategy.name).inc()
                logger.warning(
                    "Categorization strategy raised unexpectedly, falling back",
                    item_id=item.id,
                    strategy=strategy.name,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                continue

            inference_requests_total.labels(operation="categorize", outcome="success").inc()
            logger.debug("Item categorized", item_id=item.id, strategy=strategy.name, label=label.value)
            return label

        inference_requests_total.labels(operation="categorize", outcome="default").inc()
        return CategoryLabel.UNCATEGORIZED

    async def summarize(self, thread: MailThread) -> str:
        """
        Summarize a thread, caching a non-empty result on it.

        Raises:
            EngineUnavailable: No engine can generate text
            InferenceEngineError: Generation failed (retryable by the caller)
        """
        if thread.summary:
            return thread.summary

        engine = await self.resolver.resolve_generative_engine()
        if not engine.capabilities.can_generate or not await engine.is_available():
            inference_requests_total.labels(operation="summarize", outcome="unavailable").inc()
            raise EngineUnavailable(details={"engine": engine.name, "thread_id": thread.id})

        prompt = self.prompts.build_summary_prompt(thread)
        try:
            response = await read_stream(
                engine.generate(prompt=prompt, max_tokens=self.settings.SUMMARY_MAX_TOKENS)
            )
        except InferenceEngineError as e:
            inference_requests_total.labels(operation="summarize", outcome="error").inc()
            logger.error("Thread summarization failed", thread_id=thread.id, error=str(e))
            raise

        summary = parse_summary_response(response)
        if not summary:
            inference_requests_total.labels(operation="summarize", outcome="default").inc()
            return ""

        thread.summary = summary
        inference_requests_total.labels(operation="summarize", outcome="success").inc()
        logger.info("Thread summarized", thread_id=thread.id, summary_length=len(summary))
        return summary

    async def smart_reply(self, item: MailItem) -> list[str]:
        """Reply suggestions, or [] when unavailable, failed or too slow."""
        engine = await self.resolver.resolve_generative_engine()
        if not await engine.is_available():
            inference_requests_total.labels(operation="smart_reply", outcome="unavailable").inc()
            return []

        prompt = self.prompts.build_smart_reply_prompt(item)
        try:
            response = await self._race_generation(
                engine,
                prompt,
                max_tokens=self.settings.SMART_REPLY_MAX_TOKENS,
                timeout=self.settings.SMART_REPLY_TIMEOUT_SECONDS,
            )
        except GenerationTimeout as e:
            smart_reply_timeouts_total.inc()
            logger.warning("Smart reply deadline exceeded", item_id=item.id, timeout_seconds=e.timeout_seconds)
            response = ""
        except (CapabilityUnsupported, InferenceEngineError) as e:
            logger.warning("Smart reply generation failed", item_id=item.id, error=str(e))
            response = ""
        except Exception as e:
            logger.error(
                "Smart reply generation raised unexpectedly",
                item_id=item.id,
                error_type=type(e).__name__,
                error=str(e),
            )
            response = ""

        replies = parse_smart_reply_response(
            response, max_suggestions=self.settings.SMART_REPLY_MAX_SUGGESTIONS
        )
        inference_requests_total.labels(
            operation="smart_reply", outcome="success" if replies else "default"
        ).inc()
        return replies

    async def generate_embedding(self, text: str) -> list[float]:
        """Native embedding when possible, hash embedding otherwise."""
        engine = await self.resolver.resolve_generative_engine()

        for strategy in self.embedding_strategies:
            try:
                vector = await strategy.execute(engine, text)
            except (CapabilityUnsupported, InferenceEngineError) as e:
                engine_fallbacks_total.labels(operation="embed", strategy=strategy.name).inc()
                logger.debug("Embedding strategy skipped", strategy=strategy.name, error=str(e))
                continue
            except Exception as e:
                engine_fallbacks_total.labels(operation="embed", strategy=strategy.name).inc()
                logger.warning(
                    "Embedding strategy raised unexpectedly",
                    strategy=strategy.name,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                continue
            inference_requests_total.labels(operation="embed", outcome=strategy.name).inc()
            return vector

        return hash_embedding(text, dimension=self.settings.EMBEDDING_DIMENSION)

    async def _race_generation(
        self,
        engine: BaseInferenceEngine,
        prompt: str,
        max_tokens: int,
        timeout: float,
    ) -> str:
        """
        Race a full generation against a deadline timer.

        The first task to finish decides the outcome and the other one is
        cancelled without being awaited. A generation that loses contributes
        nothing: there is no partial output.

        Raises:
            GenerationTimeout: The deadline finished first
        """
        generation = asyncio.create_task(
            read_stream(engine.generate(prompt=prompt, max_tokens=max_tokens))
        )
        deadline = asyncio.create_task(asyncio.sleep(timeout))
        try:
            done, _ = await asyncio.wait({generation, deadline}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (generation, deadline):
                if not task.done():
                    task.cancel()

        if generation in done:
            return generation.result()
        raise GenerationTimeout(timeout)
