"""
Ensemble spam detection: model signal blended with the rule signal.

combined = 0.6 * model + 0.4 * rule when the model signal exists, otherwise
the rule score alone. An item is spam when combined >= 0.5. The detector only
flags items; it never deletes anything.
"""

from typing import Optional, Sequence
import structlog

from mail_inference.cancellation import CancellationToken, yield_control
from mail_inference.config import Settings
from mail_inference.engines.resolver import EngineResolver
from mail_inference.models.enums import SpamLabel
from mail_inference.models.mail import MailItem
from mail_inference.models.results import MODEL_SCORE_UNAVAILABLE, SpamDecision
from mail_inference.monitoring.metrics import batch_items_processed_total, spam_decisions_total
from mail_inference.prompts.text_utils import neutralize_prompt_injection
from mail_inference.spam.rules import RuleEngine


logger = structlog.get_logger(__name__)

SPAM_MODEL_SCORE = 0.8
LEGITIMATE_MODEL_SCORE = 0.1


class EnsembleSpamDetector:
    """
    Flags spam using the resolved engine and the deterministic rule engine.

    Attributes:
        resolver: Engine resolver for the model signal
        rule_engine: Deterministic rule signal
        model_weight / rule_weight / threshold: Ensemble parameters
        body_excerpt_chars: Body characters shown to the model
    """

    def __init__(
        self,
        resolver: EngineResolver,
        rule_engine: RuleEngine,
        settings: Settings,
        yielder=yield_control,
    ):
        self.resolver = resolver
        self.rule_engine = rule_engine
        self.model_weight = settings.SPAM_MODEL_WEIGHT
        self.rule_weight = settings.SPAM_RULE_WEIGHT
        self.threshold = settings.SPAM_THRESHOLD
        self.body_excerpt_chars = settings.SPAM_BODY_EXCERPT_CHARS
        self._yield = yielder

    async def evaluate(self, item: MailItem) -> SpamDecision:
        """Score ``item`` without mutating it."""
        signal = self.rule_engine.analyze(
            subject=item.subject,
            sender=item.sender,
            body_text=item.prompt_body,
            body_html=item.body_html,
        )
        model_score = await self.model_score(item)

        if model_score >= 0:
            combined = self.model_weight * model_score + self.rule_weight * signal.score
            mode = "ensemble"
        else:
            combined = signal.score
            mode = "rules_only"
        combined = min(1.0, max(0.0, combined))
        is_spam = combined >= self.threshold

        spam_decisions_total.labels(mode=mode, verdict="spam" if is_spam else "legitimate").inc()
        return SpamDecision(
            rule_score=signal.score,
            model_score=model_score,
            combined_score=combined,
            is_spam=is_spam,
            rule_hits=signal.rule_hits,
        )

    async def model_score(self, item: MailItem) -> float:
        """0.8 for a "spam" verdict, 0.1 for anything else, -1.0 when unavailable."""
        engine = await self.resolver.resolve_generative_engine()
        if not await engine.is_available():
            return MODEL_SCORE_UNAVAILABLE

        body = neutralize_prompt_injection(item.prompt_body)[:self.body_excerpt_chars]
        text = f"Subject: {item.subject}\nFrom: {item.sender}\nBody: {body}"
        try:
            verdict = await engine.classify(
                text=text,
                categories=[SpamLabel.LEGITIMATE.value, SpamLabel.SPAM.value],
            )
        except Exception as e:
            logger.warning("Spam model signal unavailable", item_id=item.id, error=str(e))
            return MODEL_SCORE_UNAVAILABLE

        if verdict.strip().lower() == SpamLabel.SPAM.value:
            return SPAM_MODEL_SCORE
        return LEGITIMATE_MODEL_SCORE

    async def detect(self, item: MailItem) -> bool:
        """Evaluate ``item`` and store the verdict in ``item.is_spam``."""
        decision = await self.evaluate(item)
        item.is_spam = decision.is_spam
        if decision.is_spam:
            logger.info(
                "Item flagged as spam",
                item_id=item.id,
                combined_score=round(decision.combined_score, 3),
                model_score=decision.model_score,
                rule_hits=decision.rule_hits,
            )
        return decision.is_spam

    async def detect_batch(
        self,
        items: Sequence[MailItem],
        token: Optional[CancellationToken] = None,
    ) -> int:
        """
        Run ``detect`` over items in order.

        The token is checked before each item and control is yielded after
        each one, so a long batch never monopolizes the loop.

        Returns:
            Number of items flagged as spam
        """
        flagged = 0
        for item in items:
            if token is not None and token.cancelled:
                logger.info("Spam batch cancelled", flagged=flagged)
                break
            try:
                if await self.detect(item):
                    flagged += 1
            except Exception as e:
                logger.error(
                    "Spam detection failed for item",
                    item_id=item.id,
                    error_type=type(e).__name__,
                    error=str(e),
                )
            batch_items_processed_total.labels(stage="spam").inc()
            await self._yield()
        return flagged

    def mark_as_not_spam(self, item: MailItem) -> None:
        """User override: clear the flag without re-scoring."""
        item.is_spam = False
        logger.info("Item marked as not spam", item_id=item.id)
