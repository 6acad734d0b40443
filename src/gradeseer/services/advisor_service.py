from dataclasses import dataclass
import logging
from typing import Callable, Dict, List, Optional

from gradeseer.ai.prompts import (
    ADVISOR_INSTRUCTION,
    APP_FALLBACK_RESPONSE,
    MODE_APP,
    MODE_DASHBOARD,
    MODE_SUBJECT,
    DashboardData,
    build_prompt,
    collect_upcoming,
    normalize_message,
    render_dashboard_fallback,
    render_subject_fallback,
)
from gradeseer.core.context import assemble_subject_context
from gradeseer.core.models import Subject
from gradeseer.services.gemini_service import GeminiAuthError, GeminiService, GeminiServiceError


logger = logging.getLogger(__name__)

SOURCE_LLM = "llm"
SOURCE_FALLBACK = "fallback"

APP_MAX_OUTPUT_TOKENS = 800


@dataclass(frozen=True)
class AdvisorReply:
    response: str
    model: Optional[str]
    source: str

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {"response": self.response, "model": self.model, "source": self.source}


class AdvisorService:
    """Advisor chat: prompt the LLM, fall back to a local summary when it is silent.

    Only ``GeminiAuthError`` escapes; every other LLM failure ends in the
    locally rendered text so the user always gets an answer.
    """

    def __init__(self, llm: Optional[GeminiService]) -> None:
        self.llm = llm

    @classmethod
    def from_settings(cls) -> "AdvisorService":
        try:
            llm = GeminiService.from_settings()
        except GeminiServiceError as exc:
            logger.warning("Advisor running without LLM: %s", exc)
            llm = None
        return cls(llm)

    def _reply(
        self,
        prompt: str,
        fallback: Callable[[], str],
        max_output_tokens: Optional[int] = None,
    ) -> AdvisorReply:
        model = None
        if self.llm is not None:
            try:
                result = self.llm.generate(prompt, ADVISOR_INSTRUCTION, max_output_tokens=max_output_tokens)
            except GeminiAuthError:
                raise
            except GeminiServiceError as exc:
                logger.warning("LLM generation failed, using local summary: %s", exc)
            else:
                if result.text:
                    return AdvisorReply(response=result.text, model=result.model, source=SOURCE_LLM)
                model = result.model
        return AdvisorReply(response=fallback(), model=model, source=SOURCE_FALLBACK)

    def subject_chat(self, subject: Subject, message: Optional[str]) -> AdvisorReply:
        prompt = build_prompt(normalize_message(message, MODE_SUBJECT), MODE_SUBJECT, subject)
        return self._reply(prompt, lambda: render_subject_fallback(assemble_subject_context(subject)))

    def dashboard_chat(self, subjects: List[Subject], message: Optional[str]) -> AdvisorReply:
        data = DashboardData(subjects=subjects, upcoming=collect_upcoming(subjects))
        prompt = build_prompt(normalize_message(message, MODE_DASHBOARD), MODE_DASHBOARD, data)
        return self._reply(prompt, lambda: render_dashboard_fallback(data))

    def app_chat(self, message: Optional[str]) -> AdvisorReply:
        prompt = build_prompt(normalize_message(message, MODE_APP), MODE_APP)
        return self._reply(prompt, lambda: APP_FALLBACK_RESPONSE, max_output_tokens=APP_MAX_OUTPUT_TOKENS)
