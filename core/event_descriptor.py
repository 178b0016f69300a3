"""
Event descriptor resolution and log decoding.

Turns the optional user-supplied event description (EVENT_ABI_JSON or
EVENT_SIGNATURE) into an EventDescriptor: canonical signature, topic0 hash
used as the subscription filter, and the ordered field list used to decode
(topics, data) pairs.

Resolution never raises: any problem degrades to "no decoding" (None) with
a logged warning, and every log is then alerted with the generic message.

Usage:
    descriptor = resolve_event_descriptor(settings.event_abi_json, settings.event_signature)
    if descriptor is not None:
        fields = descriptor.decode(log.topics, log.data)
"""

from __future__ import annotations

import json
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from eth_abi import decode as abi_decode
from eth_abi import is_encodable_type
from eth_abi.exceptions import ABITypeError, DecodingError, ParseError
from eth_abi.grammar import normalize as normalize_abi_type
from eth_abi.grammar import parse as parse_abi_type
from web3 import Web3

from bot_logging.logger_manager import setup_module_logger
from shared.constants import DEFAULT_EVENT_NAME, MAX_INDEXED_FIELDS
from shared.types import DecodedField, EventField

_logger = setup_module_logger(
    "event_descriptor", "event_descriptor.log", module_folder="Log_Handler_Logs"
)

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")
_SIGNATURE_RE = re.compile(
    r"^\s*(?:event\s+)?(?P<name>[A-Za-z_$][A-Za-z0-9_$]*)?\s*\((?P<params>.*)\)\s*(?P<anonymous>anonymous)?\s*;?\s*$",
    re.DOTALL,
)
_ARRAY_SUFFIX_RE = re.compile(r"^(?:\[\d*\])*")


class EventDescriptorError(ValueError):
    """Raised when an event description cannot be turned into a descriptor."""


class EventDecodeError(ValueError):
    """Raised when a log does not match the descriptor's event shape."""


# ============================================================================
# DESCRIPTOR
# ============================================================================


@dataclass(frozen=True)
class EventDescriptor:
    """A decodable event shape, resolved once at startup."""

    name: str
    signature: str  # Name(type1,type2,...)
    topic_id: str  # 0x-prefixed keccak256(signature)
    fields: tuple[EventField, ...]

    @property
    def field_types(self) -> tuple[str, ...]:
        return tuple(f.type for f in self.fields)

    @property
    def indexed_count(self) -> int:
        return sum(1 for f in self.fields if f.indexed)

    def decode(self, topics: Sequence[str], data: str) -> tuple[DecodedField, ...]:
        """
        Decode a log's topics and data payload into declared-order fields.

        Indexed static values come from topics[1:]. Indexed dynamic values
        (string, bytes, arrays, tuples) are only available as their keccak
        hash and are returned as the raw topic. Everything else is
        ABI-decoded from data.

        Raises:
            EventDecodeError: topic0 mismatch, wrong topic count, bad hex or
                an ABI payload that does not fit the declared types.
        """
        if not topics or topics[0].lower() != self.topic_id:
            raise EventDecodeError(f"topic0 does not match {self.signature}")
        if len(topics) != 1 + self.indexed_count:
            raise EventDecodeError(
                f"expected {1 + self.indexed_count} topics for {self.signature}, got {len(topics)}"
            )

        try:
            payload = _hex_to_bytes(data)
            topic_words = [_hex_to_bytes(t) for t in topics[1:]]
        except ValueError as e:
            raise EventDecodeError(f"invalid hex in log: {e}") from e

        data_types = [f.type for f in self.fields if not f.indexed]
        try:
            data_values = list(abi_decode(data_types, payload)) if data_types else []
            indexed_values = [
                word if _is_hashed_when_indexed(f.type) else abi_decode([f.type], word)[0]
                for f, word in zip((f for f in self.fields if f.indexed), topic_words)
            ]
        except (DecodingError, OverflowError, ValueError) as e:
            raise EventDecodeError(f"ABI decoding failed for {self.signature}: {e}") from e

        data_iter = iter(data_values)
        indexed_iter = iter(indexed_values)
        return tuple(
            DecodedField(
                name=f.name,
                type=f.type,
                value=next(indexed_iter) if f.indexed else next(data_iter),
            )
            for f in self.fields
        )


def _hex_to_bytes(value: str) -> bytes:
    value = value[2:] if value[:2].lower() == "0x" else value
    return bytes.fromhex(value)


def _is_hashed_when_indexed(abi_type: str) -> bool:
    return abi_type in ("string", "bytes") or abi_type.endswith("]") or abi_type.startswith("(")


# ============================================================================
# TYPE & PARAMETER PARSING
# ============================================================================


def _canonical_type(type_str: str) -> str:
    """Normalize aliases (uint -> uint256) and validate the ABI type."""
    normalized = normalize_abi_type(type_str.strip())
    try:
        parse_abi_type(normalized).validate()
    except (ParseError, ABITypeError, ValueError) as e:
        raise EventDescriptorError(f"invalid ABI type {type_str!r}: {e}") from e
    if not is_encodable_type(normalized):
        raise EventDescriptorError(f"unsupported ABI type {type_str!r}")
    return normalized


def _matching_paren(text: str, start: int = 0) -> int:
    depth = 0
    for i in range(start, len(text)):
        if text[i] == "(":
            depth += 1
        elif text[i] == ")":
            depth -= 1
            if depth == 0:
                return i
    raise EventDescriptorError(f"unbalanced parentheses in {text!r}")


def _split_params(text: str) -> list[str]:
    """Split a parameter list on top-level commas."""
    parts: list[str] = []
    depth = 0
    current: list[str] = []
    for ch in text:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth < 0:
                raise EventDescriptorError(f"unbalanced parentheses in {text!r}")
        if ch == "," and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(ch)
    if depth != 0:
        raise EventDescriptorError(f"unbalanced parentheses in {text!r}")
    tail = "".join(current)
    if parts or tail.strip():
        parts.append(tail)
    return [p.strip() for p in parts]


def _parse_param(text: str) -> EventField:
    """Parse `type [indexed] [name]`, including tuple types `(t1,t2)[]`."""
    if not text:
        raise EventDescriptorError("empty parameter in signature")

    if text.startswith("tuple("):
        text = text[len("tuple"):]

    if text.startswith("("):
        close = _matching_paren(text)
        components = [_parse_param(p).type for p in _split_params(text[1:close])]
        rest = text[close + 1:]
        suffix = _ARRAY_SUFFIX_RE.match(rest).group(0)
        type_str = "(" + ",".join(components) + ")" + suffix
        tokens = rest[len(suffix):].split()
    else:
        tokens = text.split()
        type_str = tokens.pop(0)

    indexed = False
    if tokens and tokens[0] == "indexed":
        indexed = True
        tokens = tokens[1:]
    if len(tokens) > 1:
        raise EventDescriptorError(f"unexpected tokens in parameter {text!r}")

    return EventField(name=tokens[0] if tokens else "", type=_canonical_type(type_str), indexed=indexed)


def _abi_input_type(abi_input: dict[str, Any]) -> str:
    """Canonical type of an ABI JSON input, expanding tuple components."""
    type_str = abi_input.get("type")
    if not isinstance(type_str, str) or not type_str:
        raise EventDescriptorError(f"ABI input without a type: {abi_input!r}")
    if type_str.startswith("tuple"):
        components = abi_input.get("components")
        if not isinstance(components, list):
            raise EventDescriptorError(f"tuple input without components: {abi_input!r}")
        if not all(isinstance(c, dict) for c in components):
            raise EventDescriptorError(f"tuple component must be an object: {abi_input!r}")
        inner = ",".join(_abi_input_type(c) for c in components)
        type_str = f"({inner}){type_str[len('tuple'):]}"
    return _canonical_type(type_str)


# ============================================================================
# BUILDERS
# ============================================================================


def build_descriptor(name: str, fields: Sequence[EventField]) -> EventDescriptor:
    """
    Build a descriptor from an event name and its ordered fields.

    The canonical signature ignores parameter names and indexed flags; only
    the name and ordered types contribute to the topic hash.
    """
    if not _IDENTIFIER_RE.match(name or ""):
        raise EventDescriptorError(f"invalid event name {name!r}")
    indexed = sum(1 for f in fields if f.indexed)
    if indexed > MAX_INDEXED_FIELDS:
        raise EventDescriptorError(
            f"{name} declares {indexed} indexed parameters (max {MAX_INDEXED_FIELDS})"
        )
    signature = f"{name}({','.join(f.type for f in fields)})"
    topic_id = Web3.to_hex(Web3.keccak(text=signature))
    return EventDescriptor(name=name, signature=signature, topic_id=topic_id, fields=tuple(fields))


def parse_event_signature(signature: str) -> EventDescriptor:
    """
    Parse a flat signature such as
    `Deposit(address indexed sender, address indexed owner, uint256 assets, uint256 shares)`
    or `Deposit(address,address,uint256,uint256)`.

    A missing event name defaults to Deposit.
    """
    match = _SIGNATURE_RE.match(signature or "")
    if match is None:
        raise EventDescriptorError(f"malformed event signature {signature!r}")
    if match.group("anonymous"):
        raise EventDescriptorError("anonymous events have no topic0 to filter on")
    name = match.group("name") or DEFAULT_EVENT_NAME
    fields = [_parse_param(p) for p in _split_params(match.group("params"))]
    return build_descriptor(name, fields)


def _descriptor_from_fragment(fragment: dict[str, Any]) -> EventDescriptor:
    if fragment.get("anonymous"):
        raise EventDescriptorError("anonymous events have no topic0 to filter on")
    inputs = fragment.get("inputs") or []
    if not isinstance(inputs, list):
        raise EventDescriptorError("event 'inputs' must be a list")
    fields = []
    for abi_input in inputs:
        if not isinstance(abi_input, dict):
            raise EventDescriptorError(f"event input must be an object: {abi_input!r}")
        fields.append(
            EventField(
                name=str(abi_input.get("name") or ""),
                type=_abi_input_type(abi_input),
                indexed=bool(abi_input.get("indexed", False)),
            )
        )
    return build_descriptor(str(fragment.get("name") or ""), fields)


def parse_event_abi(abi_json: str) -> EventDescriptor:
    """
    Parse a minimal ABI and pick the first event entry.

    Accepts a JSON array of fragments, {"abi": [...]}, or a single event
    object. Array entries may also be human-readable "event ..." strings.
    """
    try:
        parsed = json.loads(abi_json)
    except json.JSONDecodeError as e:
        raise EventDescriptorError(f"EVENT_ABI_JSON is not valid JSON: {e}") from e

    if isinstance(parsed, dict):
        parsed = parsed["abi"] if "abi" in parsed else [parsed]
    if not isinstance(parsed, list):
        raise EventDescriptorError("EVENT_ABI_JSON must be a JSON array of ABI fragments")

    for fragment in parsed:
        if isinstance(fragment, str) and fragment.strip().startswith("event "):
            return parse_event_signature(fragment)
        if isinstance(fragment, dict) and fragment.get("type") == "event":
            return _descriptor_from_fragment(fragment)

    raise EventDescriptorError("no event entry found in EVENT_ABI_JSON")


def resolve_event_descriptor(abi_json: str = "", signature: str = "") -> EventDescriptor | None:
    """
    Resolve the configured event description, structured ABI first.

    When EVENT_ABI_JSON is set it is the only source considered, even if it
    turns out to be unusable.

    Returns:
        The descriptor, or None when nothing is configured or parsing fails.
    """
    try:
        if abi_json:
            source = "EVENT_ABI_JSON"
            descriptor = parse_event_abi(abi_json)
        elif signature:
            source = "EVENT_SIGNATURE"
            descriptor = parse_event_signature(signature)
        else:
            _logger.info("No event description configured; alerts will use the generic message")
            return None
    except EventDescriptorError as e:
        _logger.warning(
            "Failed to build event descriptor from %s: %s. Will alert on raw logs.", source, e
        )
        return None

    _logger.info(
        "Decoding logs as %s (topic0=%s, source=%s)",
        descriptor.signature,
        descriptor.topic_id,
        source,
    )
    return descriptor
