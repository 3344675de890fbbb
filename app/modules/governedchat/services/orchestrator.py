"""
Chat Orchestrator
Request-time pipeline behind POST /api/chats/stream:

  authenticating -> scope resolving -> prompt gating -> retrieving ->
  filtering -> answering -> response gating -> responding -> reporting (async)

Prompt/response gating only runs when the user's protection scope puts the
activity in evaluateInline mode; a restrictAccess decision short-circuits to
the fixed block message. The answer is fully buffered before anything is
returned so response gating sees the final text.
"""

from dataclasses import dataclass
from typing import List, Optional
import logging

from app.modules.governedchat.services.answer_engine import AnswerEngine
from app.modules.governedchat.services.backends import ChatBackend
from app.modules.governedchat.services.label_filter import LabelFilter
from app.modules.governedchat.services.policy.gateway import PolicyGateway
from app.modules.governedchat.services.policy.state import (
    DOWNLOAD_TEXT,
    EVALUATE_INLINE,
    EVALUATE_OFFLINE,
    UPLOAD_TEXT,
    PolicyScopeCache,
    PolicyScopeEntry,
    SequenceLease,
    SessionSequenceCounter,
)
from app.modules.governedchat.services.retrieval.retriever import RetrievedDocument
from app.modules.governedchat.services.token_broker import PurviewTokens, TokenBroker, extract_bearer_token
from app.services.memory.history import SessionHistoryStore
from core.config import Settings
from core.utils.perf import profile_stage

logger = logging.getLogger(__name__)

# sequence numbers consumed by one offline enqueue, whatever was eligible
OFFLINE_SEQUENCE_ADVANCE = 2


class Stage:
    AUTHENTICATING = "authenticating"
    SCOPE_RESOLVING = "scope_resolving"
    PROMPT_GATING = "prompt_gating"
    RETRIEVING = "retrieving"
    FILTERING = "filtering"
    ANSWERING = "answering"
    RESPONSE_GATING = "response_gating"
    RESPONDING = "responding"
    REPORTING = "reporting"
    DONE = "done"


@dataclass
class ChatOutcome:
    session_id: str
    content: str
    blocked: bool = False
    stage: str = Stage.DONE
    title: Optional[str] = None


class ChatPipelineError(Exception):
    """Carries the stage at which an underlying failure happened."""

    def __init__(self, stage: str, cause: BaseException):
        super().__init__(f"{stage}: {cause}")
        self.stage = stage
        self.cause = cause


class ChatOrchestrator:
    def __init__(
        self,
        config: Settings,
        token_broker: TokenBroker,
        gateway: PolicyGateway,
        scope_cache: PolicyScopeCache,
        sequence_counter: SessionSequenceCounter,
        backend: ChatBackend,
        history_store: SessionHistoryStore,
        label_filter: Optional[LabelFilter] = None,
        answer_engine: Optional[AnswerEngine] = None,
    ):
        self.config = config
        self.token_broker = token_broker
        self.gateway = gateway
        self.scope_cache = scope_cache
        self.sequence_counter = sequence_counter
        self.backend = backend
        self.history_store = history_store
        self.label_filter = label_filter or LabelFilter(gateway, config.accepted_access_rights)
        self.answer_engine = answer_engine or AnswerEngine(
            backend.chat_model, config.RAG_SYSTEM_PROMPT, config.TITLE_SYSTEM_PROMPT
        )

    async def _resolve_scope(self, user_id: str, tokens: PurviewTokens) -> PolicyScopeEntry:
        return await self.scope_cache.get_or_fetch(user_id, lambda: self.gateway.get_scope(tokens.obo_token))

    async def _gate(
        self,
        text: str,
        activity: str,
        tokens: PurviewTokens,
        scope: PolicyScopeEntry,
        lease: SequenceLease,
    ) -> bool:
        """Evaluate ``text`` inline; True when the policy service says to block."""
        logger.info(f"Handling evaluateInline logic for {activity}...")
        body = self.gateway.process_content_body(text, lease.next(), lease.session_id, activity)
        result = await self.gateway.evaluate_content(tokens.obo_token, scope.etag, body)
        if result.decision.scope_modified:
            # scope entry is kept as is; the signal is only observed
            logger.info(f"Protection scope reported modified during {activity} evaluation")
        logger.info(f"Action mode for {activity}: {result.decision.action}")
        return result.decision.blocked

    def _blocked(self, session_id: str, activity: str) -> ChatOutcome:
        logger.info(f"Policy service instructed the app to block {activity} due to organizational policy.")
        return ChatOutcome(session_id=session_id, content=self.config.BLOCKED_MESSAGE, blocked=True, stage=Stage.RESPONDING)

    @profile_stage("chat_pipeline")
    async def handle(
        self,
        authorization: Optional[str],
        user_id: str,
        session_id: str,
        question: str,
    ) -> ChatOutcome:
        stage = Stage.AUTHENTICATING
        try:
            tokens = await self.token_broker.acquire_tokens(extract_bearer_token(authorization))

            stage = Stage.SCOPE_RESOLVING
            scope = await self._resolve_scope(user_id, tokens)
            upload_mode = scope.upload_text_mode
            download_mode = scope.download_text_mode
            logger.info(
                f"userId: {user_id} etag: {scope.etag} uploadText mode: {upload_mode} downloadText mode: {download_mode}"
            )

            async with self.sequence_counter.lease(session_id) as lease:
                if upload_mode == EVALUATE_INLINE:
                    stage = Stage.PROMPT_GATING
                    if await self._gate(question, UPLOAD_TEXT, tokens, scope, lease):
                        return self._blocked(session_id, UPLOAD_TEXT)

                stage = Stage.RETRIEVING
                candidates: List[RetrievedDocument] = await self.backend.retriever.retrieve(question)

                stage = Stage.FILTERING
                filtered = await self.label_filter.filter(candidates, tokens.app_token, tokens.user_name)
                logger.info(f"Kept {len(filtered)} of {len(candidates)} retrieved documents")

                stage = Stage.ANSWERING
                history = await self.history_store.get_messages(session_id, user_id)
                answer = await self.answer_engine.answer(question, filtered, history, candidates=candidates)

                if download_mode == EVALUATE_INLINE:
                    stage = Stage.RESPONSE_GATING
                    if await self._gate(answer.text, DOWNLOAD_TEXT, tokens, scope, lease):
                        return self._blocked(session_id, DOWNLOAD_TEXT)

                stage = Stage.RESPONDING
                await self.history_store.append_turn(session_id, user_id, question, answer.text)
                title = await self.answer_engine.ensure_title(self.history_store, session_id, user_id, question)

                if EVALUATE_OFFLINE in (upload_mode, download_mode):
                    stage = Stage.REPORTING
                    status = self.gateway.enqueue_offline(
                        tokens.obo_token,
                        scope.etag,
                        upload_mode,
                        download_mode,
                        question,
                        answer.text,
                        session_id,
                        lease.current,
                    )
                    logger.info(f"Offline policy reporting status: {status}")
                    lease.advance(OFFLINE_SEQUENCE_ADVANCE)

            return ChatOutcome(session_id=session_id, content=answer.text, title=title)
        except Exception as e:
            raise ChatPipelineError(stage, e) from e
