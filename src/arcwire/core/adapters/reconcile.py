"""Tool-call reconciliation passes applied by the message formatters.

Both provider APIs reject a conversation in which a tool invocation is left
unanswered, and both mishandle adjacent turns from the same role. Each
formatter runs its passes in order: merge, deduplicate, repair, then merge
once more for turns the repair left adjacent. The passes never raise; they
return new lists and leave their input untouched.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from .wire import (
    AnthropicContentBlock,
    AnthropicMessage,
    AnthropicTextBlock,
    AnthropicToolResultBlock,
    AnthropicToolUseBlock,
    OpenAIAssistantMessage,
    OpenAIContentPart,
    OpenAIMessage,
    OpenAITextPart,
    OpenAIToolMessage,
    OpenAIUserMessage,
)

LOGGER = logging.getLogger(__name__)

NO_RESULT_AVAILABLE = "No result available"

_MERGEABLE_OPENAI_ROLES = frozenset({"user", "assistant"})


# -- chat-completions --------------------------------------------------------


def merge_openai_turns(messages: Sequence[OpenAIMessage]) -> list[OpenAIMessage]:
    """Collapse consecutive user (or assistant) messages into one."""

    merged: list[OpenAIMessage] = []
    for message in messages:
        previous = merged[-1] if merged else None
        if (
            previous is not None
            and previous.role == message.role
            and message.role in _MERGEABLE_OPENAI_ROLES
        ):
            merged[-1] = _merge_openai_pair(previous, message)
        else:
            merged.append(message)
    return merged


def dedupe_openai_tool_results(messages: Sequence[OpenAIMessage]) -> list[OpenAIMessage]:
    """Keep only the first ``role: tool`` message per ``tool_call_id``."""

    seen: set[str] = set()
    deduped: list[OpenAIMessage] = []
    for message in messages:
        if isinstance(message, OpenAIToolMessage):
            if message.tool_call_id in seen:
                LOGGER.debug("dropping duplicate tool result for %s", message.tool_call_id)
                continue
            seen.add(message.tool_call_id)
        deduped.append(message)
    return deduped


def repair_openai_tool_calls(messages: Sequence[OpenAIMessage]) -> list[OpenAIMessage]:
    """Give every assistant tool call one answer in the tool run right after it.

    A ``role: tool`` message found elsewhere for an unanswered call is moved
    into that run; calls with no answer anywhere get a placeholder.
    """

    repaired = list(messages)
    claimed: set[int] = set()
    index = 0
    while index < len(repaired):
        message = repaired[index]
        index += 1
        if not isinstance(message, OpenAIAssistantMessage) or not message.tool_calls:
            continue

        run_end = index
        while run_end < len(repaired) and isinstance(repaired[run_end], OpenAIToolMessage):
            run_end += 1
        answered = {item.tool_call_id: item for item in repaired[index:run_end]}

        for call_id in dict.fromkeys(call.id for call in message.tool_calls):
            answer = answered.get(call_id)
            if answer is None:
                position = _find_openai_result(repaired, call_id, claimed)
                if position is None:
                    LOGGER.warning("synthesizing missing tool result for call %s", call_id)
                    answer = OpenAIToolMessage(tool_call_id=call_id, content=NO_RESULT_AVAILABLE)
                else:
                    LOGGER.debug("moving tool result for %s next to its call", call_id)
                    answer = repaired.pop(position)
                    if position < index:
                        index -= 1
                        run_end -= 1
                repaired.insert(run_end, answer)
                run_end += 1
            claimed.add(id(answer))
        index = run_end
    return repaired


def reconcile_openai(messages: Sequence[OpenAIMessage]) -> list[OpenAIMessage]:
    repaired = repair_openai_tool_calls(dedupe_openai_tool_results(merge_openai_turns(messages)))
    # Moving a result can leave two user turns adjacent.
    return merge_openai_turns(repaired)


def _find_openai_result(messages: Sequence[OpenAIMessage], call_id: str, claimed: set[int]) -> int | None:
    for position, message in enumerate(messages):
        if (
            isinstance(message, OpenAIToolMessage)
            and message.tool_call_id == call_id
            and id(message) not in claimed
        ):
            return position
    return None


def _merge_openai_pair(first: Any, second: Any) -> OpenAIMessage:
    if isinstance(first, OpenAIUserMessage):
        return OpenAIUserMessage(content=_join_user_content(first.content, second.content))

    texts = [text for text in (first.content, second.content) if text]
    tool_calls = [*(first.tool_calls or ()), *(second.tool_calls or ())]
    return OpenAIAssistantMessage(
        content="\n".join(texts) if texts else None,
        tool_calls=tool_calls or None,
    )


def _join_user_content(
    first: str | list[OpenAIContentPart],
    second: str | list[OpenAIContentPart],
) -> str | list[OpenAIContentPart]:
    if isinstance(first, str) and isinstance(second, str):
        return f"{first}\n{second}"
    return [*_as_parts(first), *_as_parts(second)]


def _as_parts(content: str | list[OpenAIContentPart]) -> list[OpenAIContentPart]:
    if isinstance(content, str):
        return [OpenAITextPart(text=content)] if content else []
    return list(content)


# -- Anthropic messages ------------------------------------------------------


def merge_anthropic_turns(messages: Sequence[AnthropicMessage]) -> list[AnthropicMessage]:
    """Concatenate the content blocks of consecutive same-role messages."""

    merged: list[AnthropicMessage] = []
    for message in messages:
        previous = merged[-1] if merged else None
        if previous is not None and previous.role == message.role:
            merged[-1] = AnthropicMessage(
                role=message.role,
                content=[*_as_blocks(previous.content), *_as_blocks(message.content)],
            )
        else:
            merged.append(message)
    return merged


def dedupe_anthropic_tool_results(messages: Sequence[AnthropicMessage]) -> list[AnthropicMessage]:
    """Keep only the first ``tool_result`` block per ``tool_use_id``.

    Duplicates are tracked across the whole conversation. A user message
    left with no blocks is dropped.
    """

    seen: set[str] = set()
    deduped: list[AnthropicMessage] = []
    for message in messages:
        if message.role != "user" or isinstance(message.content, str):
            deduped.append(message)
            continue

        blocks: list[AnthropicContentBlock] = []
        for block in message.content:
            if isinstance(block, AnthropicToolResultBlock):
                if block.tool_use_id in seen:
                    LOGGER.debug("dropping duplicate tool_result for %s", block.tool_use_id)
                    continue
                seen.add(block.tool_use_id)
            blocks.append(block)
        if blocks:
            deduped.append(AnthropicMessage(role="user", content=blocks))
    return deduped


def repair_anthropic_tool_uses(messages: Sequence[AnthropicMessage]) -> list[AnthropicMessage]:
    """Ensure the user turn after each ``tool_use`` turn answers every call.

    A ``tool_result`` found in some other user turn is moved into place, and
    a turn emptied by the move is dropped. Calls with no result anywhere get
    a placeholder. Results come first in the answering turn, followed by its
    other content. A user turn is inserted when none follows the assistant.
    """

    repaired = list(messages)
    claimed: set[int] = set()
    index = 0
    while index < len(repaired):
        message = repaired[index]
        index += 1
        if message.role != "assistant" or isinstance(message.content, str):
            continue

        tool_use_ids = list(
            dict.fromkeys(
                block.id for block in message.content if isinstance(block, AnthropicToolUseBlock)
            )
        )
        if not tool_use_ids:
            continue

        if index < len(repaired) and repaired[index].role == "user":
            blocks = _as_blocks(repaired[index].content)
        else:
            repaired.insert(index, AnthropicMessage(role="user", content=[]))
            blocks = []
        results = [block for block in blocks if isinstance(block, AnthropicToolResultBlock)]
        others = [block for block in blocks if not isinstance(block, AnthropicToolResultBlock)]
        answered = {block.tool_use_id for block in results}

        synthesized: list[str] = []
        for call_id in tool_use_ids:
            if call_id in answered:
                continue
            found = _take_anthropic_result(repaired, call_id, claimed, skip=index)
            if found is None:
                synthesized.append(call_id)
                results.append(_placeholder(call_id))
                continue
            block, removed_at = found
            LOGGER.debug("moving tool_result for %s next to its tool_use", call_id)
            results.append(block)
            if removed_at is not None and removed_at < index:
                index -= 1
        if synthesized:
            LOGGER.warning("synthesizing tool results for unanswered calls %s", synthesized)

        claimed.update(id(block) for block in results if block.tool_use_id in tool_use_ids)
        repaired[index] = AnthropicMessage(role="user", content=[*results, *others])
    return repaired


def reconcile_anthropic(messages: Sequence[AnthropicMessage]) -> list[AnthropicMessage]:
    repaired = repair_anthropic_tool_uses(dedupe_anthropic_tool_results(merge_anthropic_turns(messages)))
    # Dropping an emptied user turn can leave two assistant turns adjacent.
    return merge_anthropic_turns(repaired)


def _take_anthropic_result(
    messages: list[AnthropicMessage],
    call_id: str,
    claimed: set[int],
    *,
    skip: int,
) -> tuple[AnthropicToolResultBlock, int | None] | None:
    """Remove and return the unclaimed result for ``call_id`` outside ``skip``.

    The second item is the position of a message deleted because the move
    left it empty, or ``None``.
    """

    for position, message in enumerate(messages):
        if position == skip or message.role != "user" or isinstance(message.content, str):
            continue
        for block in message.content:
            if (
                isinstance(block, AnthropicToolResultBlock)
                and block.tool_use_id == call_id
                and id(block) not in claimed
            ):
                remaining = [other for other in message.content if other is not block]
                if remaining:
                    messages[position] = AnthropicMessage(role="user", content=remaining)
                    return block, None
                del messages[position]
                return block, position
    return None



def _as_blocks(content: str | list[AnthropicContentBlock]) -> list[AnthropicContentBlock]:
    if isinstance(content, str):
        return [AnthropicTextBlock(text=content)] if content else []
    return list(content)


def _placeholder(call_id: str) -> AnthropicToolResultBlock:
    return AnthropicToolResultBlock(tool_use_id=call_id, content=NO_RESULT_AVAILABLE)
