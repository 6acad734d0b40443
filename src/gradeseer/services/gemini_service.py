from dataclasses import dataclass
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import requests
from requests import RequestException

from gradeseer.config.settings import settings


logger = logging.getLogger(__name__)

STATIC_MODEL_PREFERENCES: Tuple[str, ...] = (
    "gemini-1.5-flash",
    "gemini-1.5-pro",
    "gemini-1.5-flash-002",
    "gemini-1.5-flash-latest",
    "gemini-1.5-pro-latest",
)


class GeminiServiceError(Exception):
    pass


class GeminiAuthError(GeminiServiceError):
    def __init__(self, status_code: int, detail: str) -> None:
        super().__init__(f"Authentication error {status_code}")
        self.status_code = status_code
        self.detail = detail


class ModelHttpError(GeminiServiceError):
    def __init__(self, status_code: int, detail: str) -> None:
        super().__init__(f"status={status_code} details={detail}")
        self.status_code = status_code
        self.detail = detail


@dataclass(frozen=True)
class GenerationResult:
    text: str
    model: Optional[str]


def _dedupe(names: Iterable[str]) -> Tuple[str, ...]:
    seen: List[str] = []
    for name in names:
        name = name.strip()
        if name and name not in seen:
            seen.append(name)
    return tuple(seen)


class ModelFallbackPolicy:
    """Try candidate models in order until one answers.

    404 and other HTTP or transport failures move on to the next candidate;
    401/403 abort the whole run with ``GeminiAuthError``. A successful call
    stops the run even if it returned no text.
    """

    AUTH_STATUSES = (401, 403)

    def __init__(self, candidates: Iterable[str]) -> None:
        self.candidates = _dedupe(candidates)

    def run(self, call: Callable[[str], str]) -> GenerationResult:
        for model in self.candidates:
            try:
                text = call(model)
            except ModelHttpError as exc:
                if exc.status_code in self.AUTH_STATUSES:
                    raise GeminiAuthError(exc.status_code, exc.detail) from exc
                logger.warning("Model %s unavailable (status %s), trying next", model, exc.status_code)
                continue
            except RequestException as exc:
                logger.warning("Model %s request failed: %s", model, exc)
                continue
            return GenerationResult(text=text, model=model)

        logger.warning("All %d candidate models exhausted", len(self.candidates))
        return GenerationResult(text="", model=None)


@dataclass(frozen=True)
class GeminiConfig:
    api_key: str
    endpoint: str = "https://generativelanguage.googleapis.com/v1beta"
    models: Tuple[str, ...] = STATIC_MODEL_PREFERENCES
    temperature: float = 0.7
    max_output_tokens: int = 1000
    timeout: float = 30.0
    discover_models: bool = True

    @classmethod
    def from_settings(cls) -> "GeminiConfig":
        return cls(
            api_key=settings.gemini_api_key,
            endpoint=settings.gemini_endpoint,
            models=_dedupe((settings.gemini_model, *STATIC_MODEL_PREFERENCES)),
            timeout=settings.gemini_timeout,
            discover_models=settings.gemini_discover_models,
        )


class GeminiService:
    def __init__(self, config: GeminiConfig) -> None:
        if not config.api_key:
            raise GeminiServiceError("Missing GEMINI_API_KEY in environment")
        self.config = config
        self.endpoint = config.endpoint.rstrip("/")

    @classmethod
    def from_settings(cls) -> "GeminiService":
        return cls(GeminiConfig.from_settings())

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-goog-api-key": self.config.api_key,
        }

    def list_models(self) -> List[str]:
        res = requests.get(f"{self.endpoint}/models", headers=self._headers(), timeout=self.config.timeout)
        if res.status_code >= 400:
            raise ModelHttpError(res.status_code, res.text)
        try:
            data = res.json()
        except ValueError as exc:
            raise GeminiServiceError("INVALID_MODEL_LIST") from exc

        names = []
        for model in data.get("models") or []:
            raw = str((model or {}).get("name") or "")
            name = raw[len("models/"):] if raw.startswith("models/") else raw
            if name:
                names.append(name)
        return names

    def candidate_models(self) -> Tuple[str, ...]:
        if not self.config.discover_models:
            return self.config.models
        try:
            available = self.list_models()
        except (GeminiServiceError, RequestException) as exc:
            logger.info("Model discovery failed, using static preferences: %s", exc)
            return self.config.models
        if not available:
            return self.config.models

        ordered = [name for name in self.config.models if name in available]
        extras = [name for name in available if name not in ordered]
        return _dedupe([*ordered, *extras])

    def _payload(self, prompt: str, system_instruction: str, max_output_tokens: int) -> Dict[str, Any]:
        return {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "systemInstruction": {"role": "system", "parts": [{"text": system_instruction}]},
            "generationConfig": {
                "temperature": self.config.temperature,
                "maxOutputTokens": max_output_tokens,
                "candidateCount": 1,
            },
        }

    @staticmethod
    def _extract_text(data: Dict[str, Any]) -> str:
        candidates = data.get("candidates") or []
        if not candidates:
            return ""
        parts = ((candidates[0] or {}).get("content") or {}).get("parts") or []
        for part in parts:
            text = (part or {}).get("text")
            if isinstance(text, str):
                return text
        return ""

    def _generate_with(self, model: str, payload: Dict[str, Any]) -> str:
        url = f"{self.endpoint}/models/{model}:generateContent"
        res = requests.post(url, headers=self._headers(), json=payload, timeout=self.config.timeout)
        if res.status_code >= 400:
            raise ModelHttpError(res.status_code, res.text)
        try:
            return self._extract_text(res.json())
        except ValueError:
            return ""

    def generate(
        self,
        prompt: str,
        system_instruction: str,
        *,
        max_output_tokens: Optional[int] = None,
    ) -> GenerationResult:
        payload = self._payload(prompt, system_instruction, max_output_tokens or self.config.max_output_tokens)
        policy = ModelFallbackPolicy(self.candidate_models())
        result = policy.run(lambda model: self._generate_with(model, payload))
        if result.model:
            logger.info("Generated advisor response with %s (%d chars)", result.model, len(result.text))
        return result
