"""Optional language-model rewording of critical advisories via the Ollama chat API.

The engine has already decided what to say; the model only rephrases it.
Every failure surfaces as EnhancementFailed so the caller can fall back to
the base message.
"""

from __future__ import annotations

import re
import time

import requests

from roadwise import config
from roadwise.errors import EnhancementFailed
from roadwise.session import EnhancementContext
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="enhancement")

MAX_ENHANCED_CHARS = 300

SYSTEM_PROMPT = """You are a calm in-car driving copilot. The warning you receive has already been decided.
Never change distances, speeds, place names, or the level of danger.
Reply with one or two short spoken sentences, plain text only. No Markdown, no lists, no quotes."""

_FENCED = re.compile(r"^```[^\n]*\n?(.*?)\n?```$", re.DOTALL)


def _unfence(text: str) -> str:
    """Drop a Markdown code fence wrapped around the whole reply."""
    stripped = text.strip()
    match = _FENCED.match(stripped)
    return match.group(1).strip() if match else stripped


def build_enhancement_messages(base_message: str, context: EnhancementContext) -> list[dict]:
    """System prompt plus a user turn carrying the base message and driving context."""
    remaining = "?" if context.distance_remaining_km is None else f"{round(context.distance_remaining_km)}"
    prompt = (
        f'The driver is navigating and an important situation was detected: "{base_message}"\n'
        f"Location: {context.lat:.4f}, {context.lng:.4f}\n"
        f"Speed: {round(context.speed_kmh)} km/h\n"
        f"Distance remaining: {remaining} km\n"
        "Write a brief voice message (at most 2 sentences) that helps and calms the driver "
        "while still conveying the urgency."
    )
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": prompt},
    ]


def validate_enhanced_text(raw_text: str | None, *, max_chars: int = MAX_ENHANCED_CHARS) -> str:
    """Clean model output; raise EnhancementFailed when it is unusable for speech."""
    text = _unfence(raw_text or "").strip('"').strip()
    if not text:
        raise EnhancementFailed("Empty enhancement output")
    if len(text) > max_chars:
        raise EnhancementFailed(f"Enhancement output too long ({len(text)} chars)")
    return text


class OllamaClient:
    """Non-streaming chat client for a local Ollama server.

    Transport errors and Ollama's intermittent "EOF" 500s are retried
    `max_retries` times; anything else fails fast.
    """

    def __init__(self, settings: config.Settings | None = None, *, max_retries: int = 1,
                 retry_backoff_sec: float = 0.5) -> None:
        settings = settings or config.settings
        self.url = f"{settings.ollama_base_url}/api/chat"
        self.model = settings.ollama_model
        self.options = settings.ollama_options
        self.timeout = settings.enhancement_timeout_seconds
        self.max_retries = max_retries
        self.retry_backoff_sec = retry_backoff_sec

    def _post(self, payload: dict) -> requests.Response:
        attempts = self.max_retries + 1
        for attempt in range(1, attempts + 1):
            last = attempt == attempts
            try:
                resp = requests.post(self.url, json=payload, timeout=self.timeout)
            except requests.exceptions.RequestException as exc:
                logger.warning("Ollama request failed", extra={"attempt": attempt, "error": str(exc)})
                if last:
                    raise EnhancementFailed(f"Ollama request failed: {exc}") from exc
                time.sleep(self.retry_backoff_sec)
                continue

            if resp.status_code == 200:
                return resp
            body = (resp.text or "")[:200]
            if "EOF" not in body or last:
                raise EnhancementFailed(f"Ollama returned {resp.status_code} for model {self.model}: {body}")
            logger.warning("Ollama returned EOF, retrying", extra={"attempt": attempt})
            time.sleep(self.retry_backoff_sec)
        raise EnhancementFailed("Ollama request was not attempted")

    def chat(self, messages: list[dict]) -> str:
        """Return the assistant content for `messages`."""
        resp = self._post({"model": self.model, "messages": messages, "stream": False, "options": self.options})
        try:
            data = resp.json()
        except ValueError as exc:
            raise EnhancementFailed(f"Ollama returned non-JSON body: {(resp.text or '')[:200]}") from exc
        content = (data.get("message") or {}).get("content") or ""
        return content if isinstance(content, str) else str(content)


class OllamaEnhancer:
    """TextEnhancer backed by a local Ollama model."""

    def __init__(self, client: OllamaClient | None = None) -> None:
        self.client = client or OllamaClient()

    def enhance(self, base_message: str, context: EnhancementContext) -> str:
        started = time.monotonic()
        text = validate_enhanced_text(self.client.chat(build_enhancement_messages(base_message, context)))
        logger.debug("Enhanced advisory", extra={"elapsed_s": round(time.monotonic() - started, 3)})
        return text
