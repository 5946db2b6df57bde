"""
Object graph wiring for the mail inference layer.

Builds one shared instance of every expensive resource (engine HTTP client,
prompt templates, resolver) from Settings and hands out the services that use
them. Hosts create a single container at startup and close it on shutdown.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional
import structlog

from mail_inference.config import Settings, settings as default_settings
from mail_inference.engines.classifier_engine import ClassifierEngine, TextClassifier
from mail_inference.engines.model_manager import ModelManager
from mail_inference.engines.ollama_engine import OllamaEngine
from mail_inference.engines.resolver import EngineResolver
from mail_inference.inference.categorization import CategorizationService
from mail_inference.inference.repository import InferenceRepository
from mail_inference.inference.smart_reply import SmartReplyService
from mail_inference.monitoring.metrics import start_metrics_server
from mail_inference.prompts.builder import PromptTemplates
from mail_inference.scheduling.scheduler import BatchProcessingScheduler
from mail_inference.spam.detector import EnsembleSpamDetector
from mail_inference.spam.rules import RuleEngine


logger = structlog.get_logger(__name__)


@dataclass
class MailInferenceContainer:
    """Wired services sharing one engine resolver."""
    
    settings: Settings
    resolver: EngineResolver
    prompts: PromptTemplates
    repository: InferenceRepository
    categorization: CategorizationService
    smart_replies: SmartReplyService
    spam_detector: EnsembleSpamDetector
    scheduler: BatchProcessingScheduler
    
    async def aclose(self) -> None:
        """Cancel background work and release engine connections."""
        self.scheduler.cancel()
        await self.resolver.close()
        logger.info("Mail inference container closed")


def build_prompt_templates(settings: Settings) -> PromptTemplates:
    templates_dir = Path(settings.PROMPT_TEMPLATES_DIR) if settings.PROMPT_TEMPLATES_DIR else None
    return PromptTemplates(
        templates_dir=templates_dir,
        classification_body_limit=settings.CLASSIFICATION_BODY_LIMIT,
        summary_body_limit=settings.SUMMARY_BODY_LIMIT,
        smart_reply_count=settings.SMART_REPLY_MAX_SUGGESTIONS,
    )


def build_resolver(settings: Settings, classifier_model: Optional[TextClassifier] = None) -> EngineResolver:
    """
    Resolver over the local Ollama engine plus an optional in-process classifier.
    
    Args:
        settings: Application settings
        classifier_model: Lightweight classifier used when the Ollama model is missing
    """
    primary = OllamaEngine(
        base_url=settings.OLLAMA_BASE_URL,
        model=settings.OLLAMA_MODEL,
        embedding_model=settings.OLLAMA_EMBEDDING_MODEL,
        timeout=settings.OLLAMA_TIMEOUT,
        max_retries=settings.OLLAMA_MAX_RETRIES,
        temperature=settings.LLM_TEMPERATURE,
        keep_alive=settings.OLLAMA_KEEP_ALIVE,
    )
    classifier = ClassifierEngine(classifier_model) if classifier_model is not None else None
    return EngineResolver(
        primary=primary,
        model_manager=ModelManager(primary),
        classifier=classifier,
        reprobe_interval=settings.ENGINE_REPROBE_SECONDS,
    )


def build_container(
    settings: Optional[Settings] = None,
    resolver: Optional[EngineResolver] = None,
    classifier_model: Optional[TextClassifier] = None,
) -> MailInferenceContainer:
    """
    Build the full object graph.
    
    Args:
        settings: Settings to use (module-level settings by default)
        resolver: Pre-built resolver, mainly for tests with fake engines
        classifier_model: Optional lightweight classifier model
    """
    settings = settings or default_settings
    resolver = resolver or build_resolver(settings, classifier_model)
    prompts = build_prompt_templates(settings)
    
    repository = InferenceRepository(resolver=resolver, prompts=prompts, settings=settings)
    categorization = CategorizationService(repository)
    smart_replies = SmartReplyService(repository, max_suggestions=settings.SMART_REPLY_MAX_SUGGESTIONS)
    spam_detector = EnsembleSpamDetector(resolver=resolver, rule_engine=RuleEngine(), settings=settings)
    scheduler = BatchProcessingScheduler(
        categorizer=categorization,
        spam_detector=spam_detector,
        batch_size=settings.BATCH_SIZE,
    )
    
    if settings.PROMETHEUS_ENABLED and settings.METRICS_PORT:
        start_metrics_server(settings.METRICS_PORT)
    
    logger.info(
        "Mail inference container built",
        ollama_model=settings.OLLAMA_MODEL,
        batch_size=settings.BATCH_SIZE,
        classifier=classifier_model is not None,
    )
    return MailInferenceContainer(
        settings=settings,
        resolver=resolver,
        prompts=prompts,
        repository=repository,
        categorization=categorization,
        smart_replies=smart_replies,
        spam_detector=spam_detector,
        scheduler=scheduler,
    )
