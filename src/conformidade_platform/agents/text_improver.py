"""Text Improver: rewrites informal CCA notes into formal banking prose."""

import logging

from conformidade_platform.agents.base import AgentResult, BaseAgent
from conformidade_platform.agents.prompts.documents import (
    TEXT_IMPROVER_SYSTEM_PROMPT,
    TEXT_IMPROVER_TEMPLATE,
)
from conformidade_platform.app.config import get_settings

logger = logging.getLogger(__name__)


class TextImprover(BaseAgent):
    def __init__(self):
        super().__init__(
            agent_name="text_improver",
            model_name=get_settings().text_model_name,
            temperature=0.4,
        )

    async def improve(self, text: str) -> AgentResult:
        result = await self.generate(
            prompt=TEXT_IMPROVER_TEMPLATE.format(text=text),
            system_instruction=TEXT_IMPROVER_SYSTEM_PROMPT,
        )
        if not result.ok:
            return result

        improved = (result.data or "").strip()
        if not improved:
            return AgentResult.failure("Resposta vazia da API", latency_ms=result.latency_ms)
        return AgentResult.success(improved, tokens_used=result.tokens_used, latency_ms=result.latency_ms)
