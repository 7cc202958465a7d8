"""
Finance Assistant

DESIGN DECISION: The assistant only ever sees the records we hand it.
The engine's unified view (most recent first) is flattened into a short
CSV-like context, capped at a fixed number of rows, and sent with the
user's question. The model never queries the ledger itself.

CRITICAL BOUNDARIES:
- CAN: Summarize and explain the records in the context
- CANNOT: Write to the ledger
- MUST: Fail with a single user-facing message on any API error
"""

from decimal import Decimal
from typing import Iterable, Optional

import google.generativeai as genai
import structlog

from kirana_ledger.config import GeminiSettings, get_settings
from kirana_ledger.models.transaction import Transaction


DEFAULT_CONTEXT_LIMIT = 50

logger = structlog.get_logger(__name__)


class AssistantError(Exception):
    """The assistant could not produce an answer."""
    pass


def _format_amount(value: Decimal) -> str:
    # 500 rather than 500.00, 12.5 rather than 12.50
    normalized = value.normalize()
    return format(normalized, "f")


def build_transaction_context(
    transactions: Iterable[Transaction],
    limit: int = DEFAULT_CONTEXT_LIMIT,
) -> str:
    """One `date,description,Income:x,Expense:y` line per record, first `limit` records."""
    lines = []
    for t in transactions:
        if len(lines) >= limit:
            break
        lines.append(
            f"{t.date.isoformat()},{t.description},"
            f"Income:{_format_amount(t.income)},Expense:{_format_amount(t.expense)}"
        )
    return "\n".join(lines)


def build_prompt(context: str, query: str) -> str:
    return f"""You are a financial assistant for a Kirana store (small grocery).
Here is a list of recent transactions (Date, Description, Income, Expense):

{context}

User Question: "{query}"

Provide a concise, helpful answer. Format any monetary values with ₹.
If the user asks for a summary, provide a brief overview of net profit and top expenses.
Keep the tone professional yet friendly."""


class FinanceAssistant:
    """Answers questions about the shop's recent transactions."""

    def __init__(self, settings: Optional[GeminiSettings] = None):
        self._settings = settings or get_settings().gemini
        self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        self._model = genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
            }
        )

    async def analyze(
        self,
        transactions: Iterable[Transaction],
        query: str,
    ) -> str:
        """
        Answer a question from the given records.

        Raises:
            AssistantError: If the model call fails or returns nothing
        """
        context = build_transaction_context(
            transactions, limit=self._settings.context_limit
        )
        prompt = build_prompt(context, query)

        try:
            response = await self._model.generate_content_async(prompt)
            text = response.text.strip()
        except Exception as e:
            logger.error("assistant_request_failed", error=str(e))
            raise AssistantError("Failed to analyze finances.") from e

        if not text:
            raise AssistantError("Failed to analyze finances.")
        return text
