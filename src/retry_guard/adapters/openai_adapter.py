"""retry_guard.adapters.openai_adapter

Helpers for integrating the retry guard with OpenAI-style message payloads.

This module is dependency-free: it operates on plain dicts/lists.
It does **not** call any OpenAI API.

Supported patterns:
- Chat Completions: response["choices"][0]["message"]["tool_calls"]
- Function calling: response["choices"][0]["message"]["function_call"]

Usage with ToolGuard:
    from retry_guard import ToolGuard
    from retry_guard.adapters.openai_adapter import (
        blocked_tool_message,
        extract_tool_calls_from_chat_completion,
    )

    guard = ToolGuard()

    for call in extract_tool_calls_from_chat_completion(response):
        with guard.attempt(call.name, call.args) as attempt:
            if not attempt.allowed:
                messages.append(blocked_tool_message(call.call_id, attempt.result))
                continue
            ...
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..types import ValidationResult

logger = logging.getLogger("retry_guard.openai")


@dataclass
class ToolInvocation:
    """A tool call requested by the model."""

    name: str
    args: Dict[str, Any] = field(default_factory=dict)
    call_id: Optional[str] = None


def append_block_directive(
    messages: List[Dict[str, Any]],
    result: ValidationResult,
) -> List[Dict[str, Any]]:
    """Copy of `messages` with the block directive added as a system message.

    For loops that drop a blocked call instead of answering it. An allowed
    result adds nothing.
    """
    out = list(messages)
    directive = result.directive()
    if directive:
        out.append({"role": "system", "content": directive})
    return out


def blocked_tool_message(call_id: Optional[str], result: ValidationResult) -> Dict[str, Any]:
    """Tool-role message answering a blocked call with the guard's directive.

    Chat Completions requires every tool_call_id to be answered, so a blocked
    call still gets a reply; it just carries instructions instead of output.
    """
    msg: Dict[str, Any] = {
        "role": "tool",
        "content": result.directive() or "",
    }
    if call_id:
        msg["tool_call_id"] = call_id
    return msg


def extract_tool_calls_from_chat_completion(resp: Dict[str, Any]) -> List[ToolInvocation]:
    """Extract ToolInvocation objects from a ChatCompletions-like response dict.

    Handles both the tool_calls format and legacy function_call format.
    Invalid entries are skipped.
    """
    choices = resp.get("choices") if isinstance(resp, dict) else None
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return []
    msg = choices[0].get("message")
    if not isinstance(msg, dict):
        return []

    calls: List[ToolInvocation] = []

    # Modern tool_calls format
    for tc in msg.get("tool_calls") or []:
        if not isinstance(tc, dict):
            continue
        fn = tc.get("function") or {}
        name = fn.get("name") if isinstance(fn, dict) else None
        if not isinstance(name, str) or not name:
            logger.debug("skipping tool call without a name")
            continue
        call_id = tc.get("id") if isinstance(tc.get("id"), str) else None
        calls.append(ToolInvocation(name=name, args=_parse_args(fn.get("arguments")), call_id=call_id))

    # Legacy function_call format (fallback)
    if not calls:
        fc = msg.get("function_call")
        if isinstance(fc, dict):
            name = fc.get("name")
            if isinstance(name, str) and name:
                calls.append(ToolInvocation(name=name, args=_parse_args(fc.get("arguments"))))

    return calls


def _parse_args(args_raw: Any) -> Dict[str, Any]:
    """Parse tool call arguments from various formats."""
    if isinstance(args_raw, dict):
        return args_raw
    if isinstance(args_raw, str) and args_raw.strip():
        try:
            parsed = json.loads(args_raw)
        except ValueError:
            logger.debug("tool call arguments are not valid JSON")
            return {}
        if isinstance(parsed, dict):
            return parsed
    return {}
