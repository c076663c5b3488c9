"""Task title generation through the Gemini API.

One generation attempt per task. The outcome of that attempt is a
``TitleOutcome``; ``TitleGenerator.generate_title`` is the only place where a
failed outcome is turned into the fallback title.
"""

import logging
import re
import time
from dataclasses import dataclass
from typing import Any

from opentelemetry import metrics, trace
from opentelemetry.trace import StatusCode

from task_manager.pii import scrub_pii
from task_manager.services.prompts import Prompt


logger = logging.getLogger(__name__)

FALLBACK_TITLE = "Nova Tarefa (IA indisponível)"

PROVIDER_NAME = "gcp.gemini"
SERVER_ADDRESS = "generativelanguage.googleapis.com"

_QUOTES_RE = re.compile(r"['\"]+")

meter = metrics.get_meter("gen_ai.client")
tracer = trace.get_tracer("gen_ai.client")

token_usage = meter.create_histogram(
    name="gen_ai.client.token.usage",
    description="Number of tokens used",
    unit="{token}",
)

operation_duration = meter.create_histogram(
    name="gen_ai.client.operation.duration",
    description="GenAI operation duration",
    unit="s",
)

cost_counter = meter.create_counter(
    name="gen_ai.client.cost",
    description="Cost of GenAI operations",
    unit="usd",
)

error_counter = meter.create_counter(
    name="gen_ai.client.error.count",
    description="GenAI operation errors",
    unit="1",
)

fallback_counter = meter.create_counter(
    name="gen_ai.client.fallback.count",
    description="Titles replaced by the fallback title",
    unit="{fallback}",
)

# USD per million tokens
PRICING: dict[str, dict[str, float]] = {
    "gemini-2.5-pro": {"input": 1.25, "output": 10.0},
    "gemini-2.5-flash": {"input": 0.30, "output": 2.50},
    "gemini-2.5-flash-lite": {"input": 0.10, "output": 0.40},
    "gemini-2.0-flash": {"input": 0.10, "output": 0.40},
}


class EmptyTitleError(Exception):
    """The model answered without usable title text."""


class GeminiUnavailableError(Exception):
    """No API key was configured, so no request can be made."""


@dataclass(frozen=True)
class TitleOutcome:
    """Result of one generation attempt: a title, or a tagged failure."""

    title: str | None = None
    error_type: str | None = None
    error_message: str | None = None

    @property
    def ok(self) -> bool:
        return self.title is not None

    @classmethod
    def success(cls, title: str) -> "TitleOutcome":
        return cls(title=title)

    @classmethod
    def failure(cls, exc: BaseException) -> "TitleOutcome":
        return cls(error_type=type(exc).__name__, error_message=str(exc))


def clean_title(text: str) -> str:
    """Trim whitespace and drop every single and double quote."""
    return _QUOTES_RE.sub("", text.strip()).strip()


def calculate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    pricing = PRICING.get(model, {"input": 0.0, "output": 0.0})
    return (input_tokens * pricing["input"] + output_tokens * pricing["output"]) / 1_000_000


def _usage(response: Any) -> tuple[int, int]:
    usage = getattr(response, "usage_metadata", None)
    input_tokens = usage.prompt_token_count if usage and usage.prompt_token_count else 0
    output_tokens = usage.candidates_token_count if usage and usage.candidates_token_count else 0
    return input_tokens, output_tokens


class TitleGenerator:
    def __init__(self, client: Any | None, model: str, prompt: Prompt) -> None:
        """
        Args:
            client: a ``google.genai.Client`` (only ``client.aio.models`` is used),
                or None when no API key is configured
            model: Gemini model id
            prompt: prompt with a ``{description}`` placeholder
        """
        self.client = client
        self.model = model
        self.prompt = prompt

    async def attempt(self, description: str) -> TitleOutcome:
        """Run a single generation request. Never raises for generation errors."""
        prompt_text = self.prompt.render(description=description)
        base_attrs: dict[str, Any] = {
            "gen_ai.operation.name": "chat",
            "gen_ai.provider.name": PROVIDER_NAME,
            "gen_ai.request.model": self.model,
            "server.address": SERVER_ADDRESS,
        }

        with tracer.start_as_current_span(f"gen_ai.chat {self.model}") as span:
            for key, value in base_attrs.items():
                span.set_attribute(key, value)
            span.set_attribute("server.port", 443)
            span.set_attribute("gen_ai.output.type", "text")
            span.add_event(
                "gen_ai.user.message",
                attributes={"gen_ai.prompt": scrub_pii(prompt_text)[:1000]},
            )

            start_time = time.perf_counter()
            try:
                if self.client is None:
                    raise GeminiUnavailableError("No Gemini client configured")
                response = await self.client.aio.models.generate_content(
                    model=self.model,
                    contents=[{"role": "user", "parts": [{"text": prompt_text}]}],
                )
                title = clean_title(response.text or "")
                if not title:
                    raise EmptyTitleError("Model returned no title text")
            except Exception as exc:
                error_type = type(exc).__name__
                span.record_exception(exc)
                span.set_attribute("error.type", error_type)
                span.set_status(StatusCode.ERROR, str(exc))
                error_counter.add(1, {**base_attrs, "error.type": error_type})
                operation_duration.record(
                    time.perf_counter() - start_time, {**base_attrs, "error.type": error_type}
                )
                return TitleOutcome.failure(exc)

            duration = time.perf_counter() - start_time
            input_tokens, output_tokens = _usage(response)
            span.set_attribute("gen_ai.usage.input_tokens", input_tokens)
            span.set_attribute("gen_ai.usage.output_tokens", output_tokens)
            span.add_event(
                "gen_ai.assistant.message",
                attributes={"gen_ai.completion": scrub_pii(title)[:2000]},
            )

            token_usage.record(input_tokens, {**base_attrs, "gen_ai.token.type": "input"})
            token_usage.record(output_tokens, {**base_attrs, "gen_ai.token.type": "output"})
            operation_duration.record(duration, base_attrs)
            cost = calculate_cost(self.model, input_tokens, output_tokens)
            cost_counter.add(cost, base_attrs)
            span.set_attribute("gen_ai.usage.cost_usd", cost)

            return TitleOutcome.success(title)

    async def generate_title(self, description: str) -> str:
        outcome = await self.attempt(description)
        if outcome.ok:
            assert outcome.title is not None
            return outcome.title

        logger.error(
            "Title generation failed (%s): %s; using fallback title",
            outcome.error_type,
            outcome.error_message,
        )
        fallback_counter.add(
            1,
            {
                "gen_ai.provider.name": PROVIDER_NAME,
                "gen_ai.request.model": self.model,
                "error.type": outcome.error_type or "unknown",
            },
        )
        return FALLBACK_TITLE


def create_title_generator(
    api_key: str,
    model: str,
    prompt: Prompt,
    timeout: float = 30.0,
) -> TitleGenerator:
    if not api_key:
        logger.warning("GEMINI_API_KEY is not set; every task will get the fallback title")
        return TitleGenerator(client=None, model=model, prompt=prompt)

    from google import genai
    from google.genai.types import HttpOptions

    # HttpOptions.timeout is in milliseconds
    client = genai.Client(api_key=api_key, http_options=HttpOptions(timeout=int(timeout * 1000)))
    return TitleGenerator(client=client, model=model, prompt=prompt)
