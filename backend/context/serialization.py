"""
Answer request serialization.

Responsibilities:
- Describe the dashboard page the user is looking at
- Merge the host system prompt with that page description
- Build the provider-neutral AnswerRequest
- Convert an AnswerRequest into chat-completion messages

Non-responsibilities:
- No truncation logic
- No turn storage
- No logging
- No orchestration decisions
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping

from adapters.answer.base import AnswerRequest


@dataclass(frozen=True)
class PageContext:
    """What the host UI is currently showing."""
    active_panel: str
    active_document: str | None = None
    document_count: int = 0
    search_query: str = ""


def describe_page(page: PageContext) -> str:
    """
    One-line, speakable description of the page.

    Example:
        User is viewing the vault panel. Active document: "Q3.pdf".
        2 document(s) loaded. Current search: "revenue".
    """
    parts: list[str] = [f"User is viewing the {page.active_panel} panel."]
    if page.active_document:
        parts.append(f'Active document: "{page.active_document}".')
    if page.document_count > 0:
        parts.append(f"{page.document_count} document(s) loaded.")
    else:
        parts.append("No documents loaded.")
    if page.search_query:
        parts.append(f'Current search: "{page.search_query}".')
    return " ".join(parts)


def build_system_prompt(
    base_prompt: str | None,
    page: PageContext | None,
) -> str | None:
    """
    Append the page description to the host system prompt.

    Returns None when there is neither a prompt nor a page.
    """
    base = (base_prompt or "").strip()
    if page is None:
        return base or None

    page_info = f"Page context: {describe_page(page)}"
    return f"{base}\n\n{page_info}" if base else page_info


def build_answer_request(
    *,
    query: str,
    context: Iterable[str] = (),
    history: Iterable[Mapping[str, str]] = (),
    system_prompt: str | None = None,
    page: PageContext | None = None,
) -> AnswerRequest:
    """Assemble the request for one turn from host-provided pieces."""
    return AnswerRequest(
        query=query,
        context=tuple(context),
        history=tuple(
            {"role": str(m["role"]), "content": str(m["content"])} for m in history
        ),
        system_prompt=build_system_prompt(system_prompt, page),
    )


def serialize_for_llm(request: AnswerRequest) -> list[dict[str, str]]:
    """
    Serialize an AnswerRequest into chat-completion message format.

    Output format:
    [
        {"role": "system", "content": "<system prompt>"},
        {"role": "system", "content": "<retrieved context>"},
        {"role": "user", "content": "..."},
        {"role": "assistant", "content": "..."},
        ...
        {"role": "user", "content": "<query>"},
    ]

    Rules:
    - System prompt first (when present)
    - Retrieved context next, as one system message
    - History turns in order (already truncated)
    - The query last, as a fresh user turn
    """
    messages: list[dict[str, str]] = []

    if request.system_prompt:
        messages.append({"role": "system", "content": request.system_prompt})

    if request.context:
        excerpts = "\n\n".join(
            f"[{i}] {text}" for i, text in enumerate(request.context, start=1)
        )
        messages.append({
            "role": "system",
            "content": f"Relevant document excerpts:\n\n{excerpts}",
        })

    messages.extend(dict(m) for m in request.history)

    messages.append({"role": "user", "content": request.query})

    return messages
