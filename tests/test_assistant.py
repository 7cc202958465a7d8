"""
Tests for the finance assistant boundary.

The Gemini client is replaced by a fake; no API calls are made.
"""

from types import SimpleNamespace

import pytest

from conftest import make_input
from kirana_ledger.agents import assistant as assistant_module
from kirana_ledger.agents import (
    AssistantError,
    FinanceAssistant,
    build_prompt,
    build_transaction_context,
)
from kirana_ledger.config import GeminiSettings
from kirana_ledger.models import Transaction, sort_transactions


class FakeModel:
    def __init__(self, text="Net profit is ₹420.", error=None):
        self.text = text
        self.error = error
        self.prompts = []

    async def generate_content_async(self, prompt):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(text=self.text)


@pytest.fixture
def fake_genai(monkeypatch):
    model = FakeModel()
    configured = {}

    monkeypatch.setattr(
        assistant_module.genai, "configure",
        lambda api_key: configured.update(api_key=api_key),
    )
    monkeypatch.setattr(
        assistant_module.genai, "GenerativeModel",
        lambda model_name, generation_config: model,
    )
    return SimpleNamespace(model=model, configured=configured)


@pytest.fixture
def settings():
    return GeminiSettings(api_key="test-key", context_limit=3)


class TestContext:
    """Tests for the context handed to the model."""

    def test_row_format(self):
        record = Transaction.new_local(
            make_input(day="2024-05-01", income="500", expense="12.50", description="Milk")
        )
        assert build_transaction_context([record]) == (
            "2024-05-01,Milk,Income:500,Expense:12.5"
        )

    def test_limit_keeps_first_rows_of_view(self):
        records = sort_transactions(
            Transaction.new_local(make_input(day=f"2024-05-{d:02d}", income="1"))
            for d in range(1, 6)
        )
        lines = build_transaction_context(records, limit=2).splitlines()
        assert [line.split(",")[0] for line in lines] == ["2024-05-05", "2024-05-04"]

    def test_prompt_contains_context_and_question(self):
        prompt = build_prompt("2024-05-01,Milk,Income:500,Expense:0", "How was today?")
        assert "Income:500" in prompt
        assert '"How was today?"' in prompt
        assert "₹" in prompt


class TestFinanceAssistant:
    """Tests for the model call."""

    @pytest.mark.asyncio
    async def test_analyze_returns_text(self, fake_genai, settings):
        assistant = FinanceAssistant(settings)
        records = [Transaction.new_local(make_input(income=str(i + 1))) for i in range(5)]

        answer = await assistant.analyze(records, "Summary please")

        assert answer == "Net profit is ₹420."
        assert fake_genai.configured["api_key"] == "test-key"
        # Context limit from settings
        assert fake_genai.model.prompts[0].count("Income:") == 3

    @pytest.mark.asyncio
    async def test_api_error_becomes_assistant_error(self, fake_genai, settings):
        fake_genai.model.error = RuntimeError("quota")
        with pytest.raises(AssistantError, match="Failed to analyze finances."):
            await FinanceAssistant(settings).analyze([], "Anything?")

    @pytest.mark.asyncio
    async def test_empty_answer_is_an_error(self, fake_genai, settings):
        fake_genai.model.text = "   "
        with pytest.raises(AssistantError):
            await FinanceAssistant(settings).analyze([], "Anything?")
