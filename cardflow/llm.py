"""LLM collaborators — chat replies and app proposals via Anthropic.

Both are injected into the session handler, so tests and offline
deployments can replace them with plain async callables.
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from typing import Protocol

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"

CHAT_SYSTEM_PROMPT = (
    "You are an assistant whose answers are shown as cards. Be concise. "
    "When you return structured data, put it in a single ```json block."
)

PROPOSAL_SYSTEM_PROMPT = (
    "You design small interactive apps. Given a card's content and the "
    "conversation around it, write a short app definition: what data it shows, "
    "which actions it offers, and which tools it needs. Plain text, under 120 words."
)


class Responder(Protocol):
    def __call__(self, text: str, history: list[tuple[str, str]]) -> AsyncIterator[str]: ...


class Proposer(Protocol):
    async def __call__(self, card_text: str, conversation_context: str) -> str: ...


def _extract_content(content) -> str:
    """Normalize message content — Anthropic can return a list of blocks or a string."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, dict):
                if block.get("type", "text") == "text":
                    parts.append(block.get("text", ""))
            else:
                parts.append(str(block))
        return "".join(parts)
    return str(content)


def _get_llm(model: str) -> ChatAnthropic:
    """Create an Anthropic chat model. Raises if no API key is configured."""
    api_key = os.environ.get("ANTHROPIC_API_KEY")
    if not api_key:
        raise RuntimeError("ANTHROPIC_API_KEY environment variable is not set")
    return ChatAnthropic(model=model, max_tokens=4096, api_key=api_key)


def _history_messages(history: list[tuple[str, str]]) -> list[BaseMessage]:
    messages: list[BaseMessage] = []
    for role, text in history:
        messages.append(HumanMessage(content=text) if role == "user" else AIMessage(content=text))
    return messages


class AnthropicResponder:
    """Streams a chat reply token chunk by token chunk."""

    def __init__(self, model: str = DEFAULT_MODEL) -> None:
        self.model = model

    async def __call__(self, text: str, history: list[tuple[str, str]]) -> AsyncIterator[str]:
        llm = _get_llm(self.model)
        messages = [SystemMessage(content=CHAT_SYSTEM_PROMPT), *_history_messages(history), HumanMessage(content=text)]
        async for chunk in llm.astream(messages):
            piece = _extract_content(chunk.content)
            if piece:
                yield piece


class AnthropicProposer:
    """Drafts an editable app definition from a card and its conversation."""

    def __init__(self, model: str = DEFAULT_MODEL) -> None:
        self.model = model

    async def __call__(self, card_text: str, conversation_context: str) -> str:
        llm = _get_llm(self.model)
        response = await llm.ainvoke([
            SystemMessage(content=PROPOSAL_SYSTEM_PROMPT),
            HumanMessage(content=f"Card:\n{card_text}\n\nConversation:\n{conversation_context}"),
        ])
        return _extract_content(response.content).strip()
