"""
AI Agents Package

The finance assistant: a read-only question-answering boundary over the
ledger view.
"""

from kirana_ledger.agents.assistant import (
    AssistantError,
    FinanceAssistant,
    build_prompt,
    build_transaction_context,
)

__all__ = [
    "AssistantError",
    "FinanceAssistant",
    "build_prompt",
    "build_transaction_context",
]
