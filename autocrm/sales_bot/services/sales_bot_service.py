"""
Sales Bot Service

Runs one conversation turn: context extraction, escalation check,
retrieval, prompt assembly, the model call and reply parsing. The lead
only ever gets a normal reply or the canned apology.
"""

from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Optional, List, Dict

from core.utils.logging_config import get_logger
from ..config import SalesBotConfig, get_config, CANNED_APOLOGY
from ..exceptions import LLMProviderError, LLMTimeoutError, ConfigurationError
from ..models import (
    Lead, BotReply, ConversationContext, RetrievalResult, WhatsAppMessage, ParseState,
    EscalationVerdict,
)
from ..providers import BaseProvider, ClaudeProvider, OpenAIProvider, GeminiProvider
from ..repositories import MessageRepository
from .context_extractor import ContextExtractor
from .escalation import classify
from .retrieval_service import RetrievalService
from .reply_parser import parse_reply, build_lead_update
from . import prompt_builder

logger = get_logger('autocrm.sales_bot.service')


class SalesBotService:
    """
    Conversation-turn orchestrator.

    The escalation verdict is computed before the model runs and always
    wins over the status the model proposes.
    """

    def __init__(self, config: Optional[SalesBotConfig] = None,
                 message_repo: Optional[MessageRepository] = None,
                 context_extractor: Optional[ContextExtractor] = None,
                 retrieval_service: Optional[RetrievalService] = None,
                 providers: Optional[Dict[str, BaseProvider]] = None):
        self.config = config or get_config()
        self.message_repo = message_repo or MessageRepository()
        self.context_extractor = context_extractor or ContextExtractor(
            self.config, message_repo=self.message_repo,
        )
        self.retrieval_service = retrieval_service or RetrievalService(self.config)

        self._providers: Dict[str, BaseProvider] = providers or {
            'gemini': GeminiProvider(),
            'openai': OpenAIProvider(),
            'claude': ClaudeProvider(),
        }

        self._executor = ThreadPoolExecutor(max_workers=2)

        logger.info(f"SalesBotService initialized (provider={self.config.PROVIDER}, model={self.config.MODEL_NAME})")

    def get_provider(self, name: str) -> BaseProvider:
        provider = self._providers.get(name)
        if not provider:
            raise ConfigurationError(f"Unknown provider: {name}")
        return provider

    def load_history(self, lead_id: str) -> List[WhatsAppMessage]:
        try:
            return self.message_repo.get_recent(lead_id, self.config.CONTEXT_MESSAGE_LIMIT)
        except Exception as e:
            logger.error(f"Could not load history for lead {lead_id}: {e}")
            return []

    def generate_reply(self, lead: Lead, query: str,
                       history: Optional[List[WhatsAppMessage]] = None) -> BotReply:
        """
        Produce the reply and lead update for one inbound message.

        Args:
            lead: Current lead row
            query: Inbound text being answered
            history: Stored message tail, oldest first (loaded if None)
        """
        if history is None:
            history = self.load_history(lead.id)

        context = self.context_extractor.extract(lead.id, messages=history)

        prior_turns = self._prior_turns(history, query)
        verdict = classify(query, prior_turns, window=self.config.ESCALATION_WINDOW)

        retrieval = self.retrieval_service.retrieve(query, context)

        context_block = prompt_builder.build_context_block(lead, retrieval, context)
        system_prompt = prompt_builder.build_system_prompt(context_block, self.config)
        messages = prompt_builder.build_messages(
            system_prompt, history[-self.config.HISTORY_LIMIT:], query, self.config,
        )

        try:
            raw = self._call_model(messages)
        except Exception as e:
            logger.error(f"Model call failed for lead {lead.id}: {e}")
            return self._fallback(verdict, retrieval, context)

        parsed = parse_reply(raw)
        if parsed.state == ParseState.MALFORMED:
            logger.warning(f"Malformed update block for lead {lead.id}: {parsed.error}")

        update = build_lead_update(parsed, verdict.escalate)

        return BotReply(
            reply=parsed.reply,
            update=update,
            escalated=bool(update and update.should_escalate),
            parse_state=parsed.state,
            retrieval=retrieval,
            context=context,
        )

    def _call_model(self, messages: List[Dict[str, str]]) -> str:
        provider = self.get_provider(self.config.PROVIDER)
        future = self._executor.submit(
            provider.generate,
            model_name=self.config.MODEL_NAME,
            messages=messages,
            max_tokens=self.config.MAX_OUTPUT_TOKENS,
            temperature=self.config.TEMPERATURE,
            top_p=self.config.TOP_P,
            top_k=self.config.TOP_K,
        )
        try:
            response = future.result(timeout=self.config.MODEL_TIMEOUT)
        except FutureTimeoutError:
            raise LLMTimeoutError(provider.name, self.config.MODEL_TIMEOUT)

        logger.debug(
            f"Model reply: tokens_in={response.input_tokens}, tokens_out={response.output_tokens}"
        )
        if response.content is None:
            raise LLMProviderError(provider.name, "Empty response")
        return response.content

    @staticmethod
    def _fallback(verdict: EscalationVerdict, retrieval: RetrievalResult,
                  context: ConversationContext) -> BotReply:
        # No update on a failed call, the lead state stays as it was
        if verdict:
            logger.warning(f"Escalation ({verdict.rule}) not applied, model call failed")
        return BotReply(
            reply=CANNED_APOLOGY,
            update=None,
            escalated=False,
            retrieval=retrieval,
            context=context,
            model_failed=True,
        )

    @staticmethod
    def _prior_turns(history: List[WhatsAppMessage], query: str) -> List[WhatsAppMessage]:
        turns = list(history)
        if turns and not turns[-1].is_outbound and turns[-1].content == query:
            turns = turns[:-1]
        return turns
