from __future__ import annotations

from arcwire.core.adapters.reconcile import (
    NO_RESULT_AVAILABLE,
    dedupe_anthropic_tool_results,
    dedupe_openai_tool_results,
    merge_anthropic_turns,
    merge_openai_turns,
    reconcile_anthropic,
    reconcile_openai,
    repair_anthropic_tool_uses,
    repair_openai_tool_calls,
)
from arcwire.core.adapters.wire import (
    AnthropicMessage,
    AnthropicTextBlock,
    AnthropicToolResultBlock,
    AnthropicToolUseBlock,
    OpenAIAssistantMessage,
    OpenAIFunctionCall,
    OpenAIImagePart,
    OpenAIImageUrl,
    OpenAITextPart,
    OpenAIToolCallWire,
    OpenAIToolMessage,
    OpenAIUserMessage,
)


def _call(call_id: str, name: str = "lookup") -> OpenAIToolCallWire:
    return OpenAIToolCallWire(id=call_id, function=OpenAIFunctionCall(name=name, arguments="{}"))


def test_merge_openai_user_strings_join_with_newline() -> None:
    merged = merge_openai_turns([OpenAIUserMessage(content="a"), OpenAIUserMessage(content="b")])

    assert merged == [OpenAIUserMessage(content="a\nb")]


def test_merge_openai_user_parts_concatenate() -> None:
    image = OpenAIImagePart(image_url=OpenAIImageUrl(url="https://example.com/x.png"))
    merged = merge_openai_turns([OpenAIUserMessage(content="look"), OpenAIUserMessage(content=[image])])

    assert len(merged) == 1
    assert merged[0].content == [OpenAITextPart(text="look"), image]


def test_merge_openai_assistants_concatenates_tool_calls() -> None:
    merged = merge_openai_turns(
        [
            OpenAIAssistantMessage(content=None, tool_calls=[_call("a")]),
            OpenAIAssistantMessage(content="thinking", tool_calls=[_call("b")]),
        ]
    )

    assert len(merged) == 1
    assert merged[0].content == "thinking"
    assert [call.id for call in merged[0].tool_calls] == ["a", "b"]


def test_merge_openai_never_merges_tool_messages() -> None:
    messages = [
        OpenAIToolMessage(tool_call_id="a", content="1"),
        OpenAIToolMessage(tool_call_id="b", content="2"),
    ]

    assert merge_openai_turns(messages) == messages


def test_dedupe_openai_keeps_first_result() -> None:
    deduped = dedupe_openai_tool_results(
        [
            OpenAIToolMessage(tool_call_id="a", content="first"),
            OpenAIToolMessage(tool_call_id="a", content="second"),
        ]
    )

    assert deduped == [OpenAIToolMessage(tool_call_id="a", content="first")]


def test_repair_openai_inserts_placeholder_directly_after_assistant() -> None:
    repaired = repair_openai_tool_calls(
        [
            OpenAIAssistantMessage(tool_calls=[_call("a"), _call("b")]),
            OpenAIToolMessage(tool_call_id="b", content="done"),
        ]
    )

    assert repaired[1] == OpenAIToolMessage(tool_call_id="a", content=NO_RESULT_AVAILABLE)
    assert repaired[2] == OpenAIToolMessage(tool_call_id="b", content="done")


def test_reconcile_openai_is_idempotent() -> None:
    once = reconcile_openai(
        [
            OpenAIUserMessage(content="hi"),
            OpenAIAssistantMessage(tool_calls=[_call("a")]),
            OpenAIUserMessage(content="again"),
        ]
    )

    assert reconcile_openai(once) == once


def test_merge_anthropic_turns_wraps_strings_in_text_blocks() -> None:
    merged = merge_anthropic_turns(
        [
            AnthropicMessage(role="user", content="one"),
            AnthropicMessage(role="user", content=[AnthropicTextBlock(text="two")]),
        ]
    )

    assert merged == [
        AnthropicMessage(role="user", content=[AnthropicTextBlock(text="one"), AnthropicTextBlock(text="two")])
    ]


def test_dedupe_anthropic_tool_results_within_message() -> None:
    deduped = dedupe_anthropic_tool_results(
        [
            AnthropicMessage(
                role="user",
                content=[
                    AnthropicToolResultBlock(tool_use_id="a", content="1"),
                    AnthropicToolResultBlock(tool_use_id="a", content="2"),
                ],
            )
        ]
    )

    assert deduped[0].content == [AnthropicToolResultBlock(tool_use_id="a", content="1")]


def test_repair_anthropic_appends_user_turn_when_assistant_is_last() -> None:
    repaired = repair_anthropic_tool_uses(
        [AnthropicMessage(role="assistant", content=[AnthropicToolUseBlock(id="a", name="lookup", input={})])]
    )

    assert repaired[-1] == AnthropicMessage(
        role="user",
        content=[AnthropicToolResultBlock(tool_use_id="a", content=NO_RESULT_AVAILABLE)],
    )


def test_repair_anthropic_places_results_before_other_blocks() -> None:
    repaired = repair_anthropic_tool_uses(
        [
            AnthropicMessage(
                role="assistant",
                content=[
                    AnthropicToolUseBlock(id="a", name="lookup", input={}),
                    AnthropicToolUseBlock(id="b", name="lookup", input={}),
                ],
            ),
            AnthropicMessage(
                role="user",
                content=[
                    AnthropicTextBlock(text="also this"),
                    AnthropicToolResultBlock(tool_use_id="b", content="ok"),
                ],
            ),
        ]
    )

    assert repaired[1].content == [
        AnthropicToolResultBlock(tool_use_id="b", content="ok"),
        AnthropicToolResultBlock(tool_use_id="a", content=NO_RESULT_AVAILABLE),
        AnthropicTextBlock(text="also this"),
    ]


def test_reconcile_anthropic_leaves_answered_conversation_alone() -> None:
    messages = [
        AnthropicMessage(role="user", content="hi"),
        AnthropicMessage(role="assistant", content=[AnthropicToolUseBlock(id="a", name="lookup", input={})]),
        AnthropicMessage(role="user", content=[AnthropicToolResultBlock(tool_use_id="a", content="ok")]),
    ]

    assert reconcile_anthropic(messages) == messages


def test_repair_openai_moves_a_later_result_into_the_run() -> None:
    repaired = repair_openai_tool_calls(
        [
            OpenAIAssistantMessage(tool_calls=[_call("t1")]),
            OpenAIUserMessage(content="hurry"),
            OpenAIToolMessage(tool_call_id="t1", content="a"),
        ]
    )

    assert repaired == [
        OpenAIAssistantMessage(tool_calls=[_call("t1")]),
        OpenAIToolMessage(tool_call_id="t1", content="a"),
        OpenAIUserMessage(content="hurry"),
    ]


def test_repair_openai_does_not_steal_an_answer_already_in_place() -> None:
    messages = [
        OpenAIAssistantMessage(tool_calls=[_call("a")]),
        OpenAIToolMessage(tool_call_id="a", content="ok"),
        OpenAIUserMessage(content="again"),
        OpenAIAssistantMessage(tool_calls=[_call("a")]),
    ]

    repaired = repair_openai_tool_calls(messages)

    assert repaired[:3] == messages[:3]
    assert repaired[4] == OpenAIToolMessage(tool_call_id="a", content=NO_RESULT_AVAILABLE)


def test_dedupe_anthropic_spans_the_whole_conversation() -> None:
    deduped = dedupe_anthropic_tool_results(
        [
            AnthropicMessage(role="assistant", content=[AnthropicToolUseBlock(id="a", name="lookup", input={})]),
            AnthropicMessage(role="user", content=[AnthropicToolResultBlock(tool_use_id="a", content="1")]),
            AnthropicMessage(role="assistant", content="done"),
            AnthropicMessage(
                role="user",
                content=[
                    AnthropicToolResultBlock(tool_use_id="a", content="2"),
                    AnthropicTextBlock(text="thanks"),
                ],
            ),
            AnthropicMessage(role="user", content=[AnthropicToolResultBlock(tool_use_id="a", content="3")]),
        ]
    )

    assert [message.role for message in deduped] == ["assistant", "user", "assistant", "user"]
    assert deduped[3].content == [AnthropicTextBlock(text="thanks")]


def test_reconcile_anthropic_moves_a_later_result_and_merges_what_is_left() -> None:
    reconciled = reconcile_anthropic(
        [
            AnthropicMessage(role="assistant", content=[AnthropicToolUseBlock(id="a", name="lookup", input={})]),
            AnthropicMessage(role="user", content="hurry"),
            AnthropicMessage(role="assistant", content="waiting"),
            AnthropicMessage(role="user", content=[AnthropicToolResultBlock(tool_use_id="a", content="late")]),
            AnthropicMessage(role="assistant", content="got it"),
        ]
    )

    assert reconciled == [
        AnthropicMessage(role="assistant", content=[AnthropicToolUseBlock(id="a", name="lookup", input={})]),
        AnthropicMessage(
            role="user",
            content=[
                AnthropicToolResultBlock(tool_use_id="a", content="late"),
                AnthropicTextBlock(text="hurry"),
            ],
        ),
        AnthropicMessage(
            role="assistant",
            content=[AnthropicTextBlock(text="waiting"), AnthropicTextBlock(text="got it")],
        ),
    ]


def test_reconcile_anthropic_moves_an_early_result_after_its_call() -> None:
    reconciled = reconcile_anthropic(
        [
            AnthropicMessage(role="user", content="go"),
            AnthropicMessage(role="assistant", content="thinking"),
            AnthropicMessage(role="user", content=[AnthropicToolResultBlock(tool_use_id="a", content="early")]),
            AnthropicMessage(role="assistant", content=[AnthropicToolUseBlock(id="a", name="lookup", input={})]),
        ]
    )

    assert reconciled == [
        AnthropicMessage(role="user", content="go"),
        AnthropicMessage(
            role="assistant",
            content=[AnthropicTextBlock(text="thinking"), AnthropicToolUseBlock(id="a", name="lookup", input={})],
        ),
        AnthropicMessage(role="user", content=[AnthropicToolResultBlock(tool_use_id="a", content="early")]),
    ]
    assert reconcile_anthropic(reconciled) == reconciled
