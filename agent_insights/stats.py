"""Session statistics and the retention filter.

Statistics are pure functions of a session's messages. The retention filter
and both renderers go through ``session_stats`` so that every consumer sees
the same numbers for the same session.

Token usage can show up at three granularities:

1. session metadata, when a source only reports totals per session;
2. per message, in ``UnifiedMessage.tokens``;
3. per content block, on step-boundary markers that carry a token container.

Each source spells the fields differently, so lookups go through the ordered
key lists below. Within a mapping the first non-zero key wins. A message's
own token fields take precedence over the markers inside it, so the same
usage is never counted twice.
"""

import json
import logging
from dataclasses import dataclass, replace
from typing import Any, Iterable, Optional

from .date_utils import parse_timestamp
from .models import TEXT, THINKING, TOOL_CALL, UnifiedMessage, UnifiedSession

logger = logging.getLogger(__name__)

TOKEN_CONTAINER_KEYS = ("tokens", "tokenUsage", "usage")
INPUT_TOKEN_KEYS = ("input", "input_tokens", "prompt_tokens")
OUTPUT_TOKEN_KEYS = ("output", "output_tokens", "completion_tokens")

TOOL_USE_TYPES = frozenset({"tool_use", "tool-use", "tool_call", "tool-call", "tool"})
TOOL_RESULT_TYPES = frozenset({"tool_result", "tool-result"})
STEP_MARKER_TYPES = frozenset({"step-start", "step-finish", "step_start", "step_finish"})
TOOL_ARGUMENT_KEYS = ("input", "arguments", "args", "parameters", "state")

# Sessions shorter than this with fewer user messages than that are noise
MIN_DURATION_SECONDS = 60
MIN_USER_MESSAGES = 2


@dataclass(frozen=True)
class StatsPolicy:
    """Knobs for the statistics engine.

    ``double_count_tool_calls``: a tool-call block counts once for its kind
    and once more for every tool-use record found inside its payload. This
    over-counts but matches historical output; turn it off to count each
    tool-call block exactly once.
    """

    double_count_tool_calls: bool = True


DEFAULT_POLICY = StatsPolicy()


@dataclass(frozen=True)
class SessionStats:
    user_messages: int = 0
    tool_calls: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    duration_seconds: int = 0

    @property
    def duration_str(self) -> str:
        return format_duration(self.duration_seconds)


def format_duration(seconds: int) -> str:
    """Compact ``<minutes>m<seconds>s`` form, ``0s`` when zero."""
    if seconds <= 0:
        return "0s"
    return f"{seconds // 60}m{seconds % 60}s"


def decode_payload(data: Any) -> Any:
    """Return structured data from a payload that may be JSON-encoded text.

    Strings that do not hold a JSON object or array come back as None.
    """
    if isinstance(data, (dict, list)):
        return data
    if isinstance(data, str):
        token = data.strip()
        if token[:1] in ("{", "["):
            try:
                return json.loads(token)
            except ValueError:
                return None
    return None


def _first_count(mapping: dict, keys: Iterable[str]) -> int:
    for key in keys:
        value = mapping.get(key)
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)) and value:
            return int(value)
    return 0


def token_counts(record: Any) -> tuple[int, int]:
    """(input, output) tokens from a token container or a record holding one."""
    if not isinstance(record, dict):
        return 0, 0
    for key in TOKEN_CONTAINER_KEYS:
        nested = record.get(key)
        if isinstance(nested, dict):
            counts = (_first_count(nested, INPUT_TOKEN_KEYS), _first_count(nested, OUTPUT_TOKEN_KEYS))
            if any(counts):
                return counts
    return _first_count(record, INPUT_TOKEN_KEYS), _first_count(record, OUTPUT_TOKEN_KEYS)


def record_type(record: Any) -> Optional[str]:
    """The ``type`` tag of a record, or None when it is missing or not a string."""
    if not isinstance(record, dict):
        return None
    kind = record.get("type")
    return kind if isinstance(kind, str) else None


def is_tool_use_record(record: dict) -> bool:
    kind = record.get("type")
    if not isinstance(kind, str) and kind is not None:
        return False
    if kind in TOOL_USE_TYPES:
        return True
    if kind is None:
        # Untyped sub-events still name the tool and carry its arguments
        named = isinstance(record.get("name") or record.get("tool"), str)
        return named and any(key in record for key in TOOL_ARGUMENT_KEYS)
    return False


def is_tool_result_record(record: Any) -> bool:
    return record_type(record) in TOOL_RESULT_TYPES


def is_step_marker(record: Any) -> bool:
    return record_type(record) in STEP_MARKER_TYPES


def count_tool_use_records(data: Any) -> int:
    """Count tool-use records in a payload of unknown shape."""
    payload = decode_payload(data)
    if isinstance(payload, list):
        return sum(count_tool_use_records(item) for item in payload)
    if isinstance(payload, dict) and is_tool_use_record(payload):
        return 1
    return 0


def _message_tokens(message: UnifiedMessage) -> tuple[int, int]:
    counts = token_counts(message.tokens)
    if any(counts):
        return counts
    input_tokens = output_tokens = 0
    for block in message.content:
        payload = decode_payload(block.data)
        if is_step_marker(payload):
            block_in, block_out = token_counts(payload)
            input_tokens += block_in
            output_tokens += block_out
    return input_tokens, output_tokens


def _message_tool_calls(message: UnifiedMessage, policy: StatsPolicy) -> int:
    count = 0
    for block in message.content:
        if block.kind == TOOL_CALL:
            if not is_tool_result_record(decode_payload(block.data)):
                count += 1
            if policy.double_count_tool_calls:
                count += count_tool_use_records(block.data)
        elif block.kind == TEXT:
            # Some tools log tool calls as JSON text
            count += count_tool_use_records(block.data)
    return count


def _timestamps(messages: Iterable[UnifiedMessage]) -> list:
    stamps = (parse_timestamp(m.timestamp) for m in messages)
    return [ts for ts in stamps if ts is not None]


def compute_stats(
    messages: list[UnifiedMessage],
    metadata: Optional[dict] = None,
    policy: StatsPolicy = DEFAULT_POLICY,
) -> SessionStats:
    """Derive counts, token totals and duration from a list of messages."""
    user_messages = 0
    tool_calls = 0
    input_tokens, output_tokens = token_counts(metadata or {})

    for message in messages:
        if message.role == "user" and any(b.kind in (TEXT, THINKING) for b in message.content):
            user_messages += 1
        tool_calls += _message_tool_calls(message, policy)
        msg_in, msg_out = _message_tokens(message)
        input_tokens += msg_in
        output_tokens += msg_out

    stamps = _timestamps(messages)
    duration = 0
    if len(stamps) >= 2:
        duration = max(0, int((max(stamps) - min(stamps)).total_seconds()))

    return SessionStats(
        user_messages=user_messages,
        tool_calls=tool_calls,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        duration_seconds=duration,
    )


def session_stats(session: UnifiedSession, policy: StatsPolicy = DEFAULT_POLICY) -> SessionStats:
    """Statistics for a whole session.

    Falls back to the session's start/end time for the duration when none of
    its messages carry a timestamp.
    """
    stats = compute_stats(session.messages, session.metadata, policy)
    if stats.duration_seconds or _timestamps(session.messages):
        return stats
    start = parse_timestamp(session.start_time)
    end = parse_timestamp(session.end_time)
    if start and end and end > start:
        return replace(stats, duration_seconds=int((end - start).total_seconds()))
    return stats


def is_substantive(stats: SessionStats) -> bool:
    """Whether a session is worth persisting."""
    return not (
        stats.duration_seconds < MIN_DURATION_SECONDS
        and stats.user_messages < MIN_USER_MESSAGES
    )


def filter_sessions(
    sessions: list[UnifiedSession],
    policy: StatsPolicy = DEFAULT_POLICY,
) -> tuple[list[UnifiedSession], int]:
    """Drop trivial sessions. Returns (kept, dropped_count)."""
    kept = []
    for session in sessions:
        try:
            stats = session_stats(session, policy)
        except Exception as e:
            logger.warning(f"Failed to compute stats for {session.agent} session {session.id}: {e}")
            continue
        if is_substantive(stats):
            kept.append(session)
        else:
            logger.debug(
                f"Filtered {session.agent} session {session.id}: "
                f"msg={stats.user_messages}, dur={stats.duration_seconds}"
            )
    return kept, len(sessions) - len(kept)
