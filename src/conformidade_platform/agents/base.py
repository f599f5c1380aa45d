"""Base agent class for the conformidade AI agents.

Both agents (document extraction and text improvement) inherit from
BaseAgent, which provides:

- Gemini model access via the infra.gemini_client wrapper
- A standard AgentResult return type (Result pattern)
- Automatic latency measurement and token tracking
- Database activity logging via AgentLog records
- Forced function calling for structured extraction from PDFs and images
"""

import asyncio
import base64
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result type
# ---------------------------------------------------------------------------

@dataclass
class AgentResult:
    """Standard result type for all agent operations.

    Every agent call returns an AgentResult instead of raising. Callers
    check ``result.ok``; on failure ``status_code`` carries the upstream
    HTTP status when the provider reported one (429 rate limit, 402
    credits), so routes can pick a specific message.

    Attributes:
        ok: True if the operation succeeded.
        data: The response payload (text, function-call arguments, ...).
        error: Human-readable error description when ``ok`` is False.
        status_code: Upstream HTTP status of the failure, if known.
        tokens_used: Total tokens consumed (prompt + completion).
        latency_ms: Wall-clock time for the operation in milliseconds.
    """

    ok: bool
    data: Any = None
    error: Optional[str] = None
    status_code: Optional[int] = None
    tokens_used: int = 0
    latency_ms: int = 0

    @classmethod
    def success(
        cls,
        data: Any,
        tokens_used: int = 0,
        latency_ms: int = 0,
    ) -> "AgentResult":
        """Create a successful result."""
        return cls(
            ok=True,
            data=data,
            tokens_used=tokens_used,
            latency_ms=latency_ms,
        )

    @classmethod
    def failure(
        cls, error: str, latency_ms: int = 0, status_code: Optional[int] = None
    ) -> "AgentResult":
        """Create a failure result."""
        return cls(ok=False, error=error, latency_ms=latency_ms, status_code=status_code)


def _status_code(exc: Exception) -> Optional[int]:
    """HTTP status of a google.api_core error (``code`` attribute), if any."""
    code = getattr(exc, "code", None)
    if isinstance(code, int):
        return code
    return getattr(code, "value", None) if code is not None else None


def _tokens(response) -> int:
    usage = getattr(response, "usage_metadata", None)
    if not usage:
        return 0
    prompt_tokens = getattr(usage, "prompt_token_count", 0) or 0
    completion_tokens = getattr(usage, "candidates_token_count", 0) or 0
    return prompt_tokens + completion_tokens


def file_part(content_base64: str, mime_type: str) -> dict:
    """Inline blob part for a base64-encoded PDF or image."""
    return {"mime_type": mime_type, "data": base64.b64decode(content_base64)}


# ---------------------------------------------------------------------------
# Base agent
# ---------------------------------------------------------------------------

class BaseAgent:
    """Base class for the conformidade agents.

    Example::

        class NotesAgent(BaseAgent):
            def __init__(self):
                super().__init__(agent_name="notes")

            async def summarize(self, text: str) -> AgentResult:
                return await self.generate(
                    prompt=f"Resuma: {text}",
                    system_instruction="Você resume anotações bancárias.",
                )
    """

    def __init__(
        self,
        agent_name: str,
        model_name: Optional[str] = None,
        temperature: float = 0.2,
        timeout_seconds: float = 120,
    ):
        self.agent_name = agent_name
        self.model_name = model_name
        self.temperature = temperature
        self.timeout_seconds = timeout_seconds

    # ------------------------------------------------------------------
    # Core generation
    # ------------------------------------------------------------------

    async def generate(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
    ) -> AgentResult:
        """Generate a single-turn text response from Gemini.

        Returns:
            An ``AgentResult`` with the response text in ``data``.
        """
        start_time = time.time()
        try:
            from conformidade_platform.infra.gemini_client import get_model

            model = get_model(
                model_name=self.model_name,
                temperature=self.temperature,
                system_instruction=system_instruction,
            )

            response = await asyncio.wait_for(
                model.generate_content_async(prompt),
                timeout=self.timeout_seconds,
            )
            latency_ms = int((time.time() - start_time) * 1000)
            tokens_used = _tokens(response)
            response_text = response.text

            logger.info(
                "[%s] Generation succeeded: tokens=%d, latency=%dms",
                self.agent_name,
                tokens_used,
                latency_ms,
            )

            await self._safe_log_activity(
                action="generate",
                input_summary=prompt[:500],
                output_summary=(response_text or "")[:500],
                tokens_used=tokens_used,
                latency_ms=latency_ms,
            )

            return AgentResult.success(
                data=response_text,
                tokens_used=tokens_used,
                latency_ms=latency_ms,
            )

        except Exception as exc:
            latency_ms = int((time.time() - start_time) * 1000)
            logger.error(
                "[%s] Generation failed after %dms: %s",
                self.agent_name,
                latency_ms,
                exc,
            )
            return AgentResult.failure(str(exc), latency_ms=latency_ms, status_code=_status_code(exc))

    # ------------------------------------------------------------------
    # Forced function calling
    # ------------------------------------------------------------------

    async def call_function(
        self,
        parts: list,
        function: dict,
        system_instruction: Optional[str] = None,
    ) -> AgentResult:
        """Send ``parts`` (text and inline files) and force a call to ``function``.

        Returns:
            An ``AgentResult`` whose ``data`` is the call's arguments as a
            plain dict. A response without a function call is a failure.
        """
        start_time = time.time()
        try:
            from conformidade_platform.infra.gemini_client import get_model

            model = get_model(
                model_name=self.model_name,
                temperature=self.temperature,
                system_instruction=system_instruction,
                function=function,
            )

            response = await asyncio.wait_for(
                model.generate_content_async(parts),
                timeout=self.timeout_seconds,
            )
            latency_ms = int((time.time() - start_time) * 1000)
            tokens_used = _tokens(response)

            arguments = None
            for candidate in response.candidates or []:
                for part in candidate.content.parts:
                    call = getattr(part, "function_call", None)
                    if call and call.name == function["name"]:
                        arguments = {key: value for key, value in call.args.items()}
                        break
                if arguments is not None:
                    break

            if arguments is None:
                logger.warning("[%s] No function call in response", self.agent_name)
                return AgentResult.failure(
                    "IA não retornou dados estruturados", latency_ms=latency_ms
                )

            logger.info(
                "[%s] %s succeeded: tokens=%d, latency=%dms",
                self.agent_name,
                function["name"],
                tokens_used,
                latency_ms,
            )

            await self._safe_log_activity(
                action=function["name"],
                input_summary=" ".join(p for p in parts if isinstance(p, str))[:500],
                output_summary=str(arguments)[:500],
                tokens_used=tokens_used,
                latency_ms=latency_ms,
            )

            return AgentResult.success(
                data=arguments,
                tokens_used=tokens_used,
                latency_ms=latency_ms,
            )

        except Exception as exc:
            latency_ms = int((time.time() - start_time) * 1000)
            logger.error(
                "[%s] Function call failed after %dms: %s",
                self.agent_name,
                latency_ms,
                exc,
            )
            return AgentResult.failure(str(exc), latency_ms=latency_ms, status_code=_status_code(exc))

    # ------------------------------------------------------------------
    # Activity logging
    # ------------------------------------------------------------------

    async def log_activity(
        self,
        action: str,
        input_summary: str,
        output_summary: str,
        tokens_used: int,
        latency_ms: int,
    ) -> None:
        """Persist an ``AgentLog`` row for one agent call."""
        try:
            from conformidade_platform.domain.models import AgentLog
            from conformidade_platform.infra.database import async_session

            async with async_session() as session:
                session.add(
                    AgentLog(
                        id=str(uuid.uuid4()),
                        agent_name=self.agent_name,
                        action=action,
                        input_summary=input_summary,
                        output_summary=output_summary,
                        tokens_used=tokens_used,
                        latency_ms=latency_ms,
                        created_at=datetime.now(timezone.utc),
                    )
                )
                await session.commit()
                logger.debug(
                    "[%s] Activity logged: action=%s, tokens=%d",
                    self.agent_name,
                    action,
                    tokens_used,
                )

        except Exception as exc:
            # DB logging must never break agent operation
            logger.warning(
                "[%s] Failed to log activity to DB: %s", self.agent_name, exc
            )

    async def _safe_log_activity(self, **kwargs) -> None:
        """Schedule ``log_activity`` in the background so it never blocks the call."""
        from conformidade_platform.services.notification_dispatcher import dispatcher

        dispatcher.spawn(self.log_activity(**kwargs), f"agent-log:{self.agent_name}")
