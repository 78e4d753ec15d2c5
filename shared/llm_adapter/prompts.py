"""Fixed system prompt and transcript rendering shared by every adapter."""

from __future__ import annotations

from collections.abc import Iterable

from shared.llm_adapter.models import ChatRole, ChatTurn

SYSTEM_PROMPT = """You are OpenSAM AI, an expert assistant for SAM.gov (System for Award Management) government contracting opportunities. Your expertise includes:

- Government contracting processes and terminology
- SAM.gov opportunity analysis and search
- Contract award history and trends
- NAICS codes and industry classifications
- Set-aside programs and small business categories
- Federal procurement regulations (FAR)
- Proposal writing and past performance evaluation

When users ask about contracting opportunities, provide detailed, accurate information. If you need to search for specific opportunities, indicate that you'll search SAM.gov data. Always prioritize accuracy and compliance with federal regulations.

Keep responses concise but comprehensive, and always consider the business context of government contracting."""

HUMAN_PREFIX = "Human:"
ASSISTANT_PREFIX = "Assistant:"
STOP_SEQUENCE = "\nHuman:"


def render_transcript(turns: Iterable[ChatTurn]) -> str:
    """
    Render a conversation as a Human/Assistant transcript prefixed by the
    system prompt and ending with an open Assistant turn.
    """
    lines = []
    for turn in turns:
        if turn.role == ChatRole.SYSTEM:
            continue
        prefix = ASSISTANT_PREFIX if turn.role == ChatRole.ASSISTANT else HUMAN_PREFIX
        lines.append(f"{prefix} {turn.content}")
    conversation = "\n\n".join(lines)
    return f"{SYSTEM_PROMPT}\n\n{conversation}\n\n{ASSISTANT_PREFIX}"
