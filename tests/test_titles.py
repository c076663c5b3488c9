from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from task_manager.services.prompts import Prompt
from task_manager.services.titles import (
    FALLBACK_TITLE,
    TitleGenerator,
    TitleOutcome,
    calculate_cost,
    clean_title,
    create_title_generator,
)


MOCK_PROMPT = Prompt(name="test", user='Title for: "{description}"')


def _response(text: str | None) -> MagicMock:
    response = MagicMock()
    response.text = text
    response.usage_metadata = MagicMock(prompt_token_count=12, candidates_token_count=4)
    return response


@pytest.fixture
def mock_client() -> MagicMock:
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock(return_value=_response("Grocery Run"))
    return client


@pytest.fixture
def generator(mock_client: MagicMock) -> TitleGenerator:
    return TitleGenerator(client=mock_client, model="gemini-2.5-flash", prompt=MOCK_PROMPT)


class TestCleanTitle:
    def test_strips_surrounding_whitespace(self) -> None:
        assert clean_title("  Grocery Run \n") == "Grocery Run"

    def test_removes_quotes_anywhere(self) -> None:
        assert clean_title("\"Buy 'fresh' milk\"") == "Buy fresh milk"

    def test_no_whitespace_left_after_quote_removal(self) -> None:
        assert clean_title('"  Grocery Run  "') == "Grocery Run"

    def test_plain_title_unchanged(self) -> None:
        assert clean_title("Grocery Run") == "Grocery Run"


class TestTitleOutcome:
    def test_success(self) -> None:
        outcome = TitleOutcome.success("Grocery Run")
        assert outcome.ok
        assert outcome.title == "Grocery Run"
        assert outcome.error_type is None

    def test_failure_is_tagged_with_exception_type(self) -> None:
        outcome = TitleOutcome.failure(TimeoutError("slow"))
        assert not outcome.ok
        assert outcome.title is None
        assert outcome.error_type == "TimeoutError"
        assert outcome.error_message == "slow"


class TestAttempt:
    async def test_sends_single_user_message_with_description(
        self, generator: TitleGenerator, mock_client: MagicMock
    ) -> None:
        await generator.attempt("Buy milk {and} eggs")

        call = mock_client.aio.models.generate_content.await_args
        assert call.kwargs["model"] == "gemini-2.5-flash"
        contents = call.kwargs["contents"]
        assert len(contents) == 1
        assert contents[0]["role"] == "user"
        assert contents[0]["parts"][0]["text"] == 'Title for: "Buy milk {and} eggs"'

    async def test_success_returns_cleaned_title(
        self, generator: TitleGenerator, mock_client: MagicMock
    ) -> None:
        mock_client.aio.models.generate_content.return_value = _response(' "Grocery Run" \n')
        outcome = await generator.attempt("Buy milk")
        assert outcome == TitleOutcome.success("Grocery Run")

    async def test_exception_becomes_failure(
        self, generator: TitleGenerator, mock_client: MagicMock
    ) -> None:
        mock_client.aio.models.generate_content.side_effect = ConnectionError("unreachable")
        outcome = await generator.attempt("Buy milk")
        assert not outcome.ok
        assert outcome.error_type == "ConnectionError"

    @pytest.mark.parametrize("text", [None, "", "   ", '""'])
    async def test_empty_text_becomes_failure(
        self, generator: TitleGenerator, mock_client: MagicMock, text: str | None
    ) -> None:
        mock_client.aio.models.generate_content.return_value = _response(text)
        outcome = await generator.attempt("Buy milk")
        assert outcome.error_type == "EmptyTitleError"

    async def test_missing_client_becomes_failure(self) -> None:
        generator = TitleGenerator(client=None, model="gemini-2.5-flash", prompt=MOCK_PROMPT)
        outcome = await generator.attempt("Buy milk")
        assert outcome.error_type == "GeminiUnavailableError"

    async def test_single_attempt_only(
        self, generator: TitleGenerator, mock_client: MagicMock
    ) -> None:
        mock_client.aio.models.generate_content.side_effect = TimeoutError()
        await generator.attempt("Buy milk")
        assert mock_client.aio.models.generate_content.await_count == 1


class TestGenerateTitle:
    async def test_returns_generated_title(self, generator: TitleGenerator) -> None:
        assert await generator.generate_title("Buy milk") == "Grocery Run"

    async def test_failure_returns_fallback(
        self, generator: TitleGenerator, mock_client: MagicMock
    ) -> None:
        mock_client.aio.models.generate_content.side_effect = RuntimeError("quota exceeded")
        assert await generator.generate_title("Buy milk") == FALLBACK_TITLE

    async def test_failure_is_logged(
        self, generator: TitleGenerator, mock_client: MagicMock, caplog: pytest.LogCaptureFixture
    ) -> None:
        mock_client.aio.models.generate_content.side_effect = RuntimeError("quota exceeded")
        with caplog.at_level("ERROR", logger="task_manager.services.titles"):
            await generator.generate_title("Buy milk")
        assert "quota exceeded" in caplog.text

    async def test_fallback_counter_incremented(
        self, generator: TitleGenerator, mock_client: MagicMock
    ) -> None:
        mock_client.aio.models.generate_content.side_effect = RuntimeError("boom")
        with patch("task_manager.services.titles.fallback_counter") as counter:
            await generator.generate_title("Buy milk")
        counter.add.assert_called_once()
        assert counter.add.call_args.args[1]["error.type"] == "RuntimeError"

    async def test_failure_recorded_on_span(
        self, generator: TitleGenerator, mock_client: MagicMock
    ) -> None:
        mock_client.aio.models.generate_content.side_effect = RuntimeError("boom")
        mock_span = MagicMock()
        with patch("task_manager.services.titles.tracer") as mock_tracer:
            mock_tracer.start_as_current_span.return_value.__enter__.return_value = mock_span
            await generator.generate_title("Buy milk")

        mock_span.record_exception.assert_called_once()
        mock_span.set_attribute.assert_any_call("error.type", "RuntimeError")

    async def test_prompt_pii_scrubbed_on_span(
        self, generator: TitleGenerator
    ) -> None:
        mock_span = MagicMock()
        with patch("task_manager.services.titles.tracer") as mock_tracer:
            mock_tracer.start_as_current_span.return_value.__enter__.return_value = mock_span
            await generator.generate_title("Email ana@example.com about the invoice")

        prompt_event = mock_span.add_event.call_args_list[0]
        assert prompt_event.args[0] == "gen_ai.user.message"
        recorded = prompt_event.kwargs["attributes"]["gen_ai.prompt"]
        assert "ana@example.com" not in recorded
        assert "[EMAIL]" in recorded


class TestCost:
    def test_gemini_flash_cost(self) -> None:
        assert calculate_cost("gemini-2.5-flash", 1000, 500) == pytest.approx(
            (1000 * 0.30 + 500 * 2.50) / 1_000_000
        )

    def test_unknown_model_zero_cost(self) -> None:
        assert calculate_cost("unknown-model", 1000, 500) == 0.0


class TestFactory:
    def test_without_api_key_has_no_client(self) -> None:
        generator = create_title_generator(api_key="", model="gemini-2.5-flash", prompt=MOCK_PROMPT)
        assert generator.client is None

    def test_with_api_key_builds_genai_client(self) -> None:
        with patch("google.genai.Client") as mock_cls:
            generator = create_title_generator(
                api_key="test-key", model="gemini-2.5-flash", prompt=MOCK_PROMPT, timeout=5.0
            )
        assert generator.client is mock_cls.return_value
        assert mock_cls.call_args.kwargs["api_key"] == "test-key"
        assert mock_cls.call_args.kwargs["http_options"].timeout == 5000
