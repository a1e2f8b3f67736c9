"""
Action parsing for free-form model replies.

The model is asked to answer in JSON, but its output is treated as
untrusted text. Parsing tries the whole reply as one JSON document first,
then falls back to decoding every flat ``{...}`` fragment found in the text.
Anything that does not decode, or decodes to something other than a known
action, is dropped without error.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolCall:
    """Request to invoke a registered tool."""

    tool: str
    args: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"action": "call", "tool": self.tool, "args": self.args}


@dataclass(frozen=True)
class Answer:
    """Final answer text."""

    result: str

    def to_dict(self) -> dict:
        return {"action": "answer", "result": self.result}


Action = Union[ToolCall, Answer]


@dataclass
class ParsedReply:
    """Actions recovered from one model reply.

    ``items`` counts every JSON value decoded, recognized or not. A reply
    with zero items is the only case that needs a corrective prompt.
    """

    items: int
    actions: list[Action] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return self.items == 0


def scan_flat_objects(text: str) -> list[str]:
    """
    Find every brace-delimited substring with no inner braces.

    ``'x {"a": 1} y {"b": {"c": 2}}'`` yields ``'{"a": 1}'`` and
    ``'{"c": 2}'``: an opening brace only counts if no other opening brace
    appears before its closing one.
    """
    fragments = []
    start: Optional[int] = None
    for index, char in enumerate(text):
        if char == "{":
            start = index
        elif char == "}" and start is not None:
            fragments.append(text[start : index + 1])
            start = None
    return fragments


def decode_items(text: str) -> list[Any]:
    """Decode the reply into a list of JSON values, leniently."""
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        pass
    else:
        return data if isinstance(data, list) else [data]

    items = []
    for fragment in scan_flat_objects(text):
        try:
            items.append(json.loads(fragment))
        except json.JSONDecodeError:
            logger.debug("Dropping undecodable fragment: %s", fragment[:200])
    return items


def to_action(item: Any) -> Optional[Action]:
    """Interpret one decoded JSON value as an action, or None if unrecognized."""
    if not isinstance(item, dict):
        return None

    kind = item.get("action")
    if kind == "answer":
        if "result" not in item or item["result"] is None:
            return None
        result = item["result"]
        if not isinstance(result, str):
            result = json.dumps(result)
        return Answer(result=result)

    if kind == "call":
        tool = item.get("tool")
        if not isinstance(tool, str) or not tool:
            return None
        args = item.get("args") or {}
        if isinstance(args, str):
            # Some models double-encode the arguments
            try:
                args = json.loads(args)
            except json.JSONDecodeError:
                return None
        if not isinstance(args, dict):
            return None
        return ToolCall(tool=tool, args=args)

    return None


def parse_reply(text: str) -> ParsedReply:
    """
    Recover structured actions from raw model output.

    Args:
        text: The model's reply, as returned by the inference service.

    Returns:
        ParsedReply with the number of decoded JSON values and the
        recognized actions, in reply order.
    """
    items = decode_items(text.strip())
    actions = [action for action in map(to_action, items) if action is not None]
    if len(actions) < len(items):
        logger.debug("Discarded %d unrecognized item(s)", len(items) - len(actions))
    return ParsedReply(items=len(items), actions=actions)
