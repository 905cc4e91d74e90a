"""Render unified sessions as Markdown transcripts and JSON summaries."""

import json
from typing import Any

from .date_utils import format_time, to_iso
from .models import CODE, FILE, IMAGE, TEXT, THINKING, TOOL_CALL, ContentBlock, UnifiedSession
from .stats import DEFAULT_POLICY, SessionStats, StatsPolicy, decode_payload, record_type, session_stats

TOOL_INPUT_LIMIT = 100
TOOL_OUTPUT_LIMIT = 200
TOOL_RESULT_LIMIT = 500
HASH_LIMIT = 8
FILE_PREVIEW_LINES = 20

# Record type assumed for untyped payloads of each structured kind
_DEFAULT_RECORD_TYPES = {TOOL_CALL: "tool_call", FILE: "file", IMAGE: "image"}


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, default=str)


def _input_lines(arguments: Any) -> list[str]:
    arguments = decode_payload(arguments) if isinstance(arguments, str) else arguments
    if not isinstance(arguments, dict) or not arguments:
        return []
    lines = ["  Input:"]
    for key, value in arguments.items():
        lines.append(f"    {key}: {truncate(_as_text(value), TOOL_INPUT_LIMIT)}")
    return lines


def _format_tool_use(record: dict) -> str:
    tool_id = record.get("id") or record.get("callID") or ""
    name = record.get("name") or record.get("tool") or ""
    lines = [f'<tool_use id="{tool_id}" name="{name}">']
    lines.extend(_input_lines(record.get("input") or record.get("arguments") or record.get("args")))
    lines.append("</tool_use>")
    return "\n".join(lines)


def _format_tool_state(record: dict) -> str:
    """OpenCode tool parts: call id, status, input and output live under ``state``."""
    state = record.get("state") if isinstance(record.get("state"), dict) else {}
    lines = [
        f'<tool_use id="{record.get("callID") or ""}" name="{record.get("tool") or ""}">',
        f"  status: {state.get('status') or ''}",
    ]
    lines.extend(_input_lines(state.get("input")))
    if state.get("output"):
        lines.append(f"  Output: {truncate(_as_text(state['output']), TOOL_OUTPUT_LIMIT)}")
    lines.append("</tool_use>")
    return "\n".join(lines)


def _format_tool_result(record: dict) -> str:
    header = f'<tool_result tool_use_id="{record.get("tool_use_id") or ""}"'
    if record.get("is_error"):
        header += ' is_error="true"'
    lines = [header + ">"]
    if record.get("content"):
        lines.append("  " + truncate(_as_text(record["content"]), TOOL_RESULT_LIMIT))
    lines.append("</tool_result>")
    return "\n".join(lines)


def _format_step_start(record: dict) -> str:
    snapshot = truncate(str(record.get("snapshot") or ""), HASH_LIMIT)
    return f"<step_start>\n  snapshot: {snapshot}\n</step_start>"


def _format_step_finish(record: dict) -> str:
    lines = ["<step_finish>", f"  reason: {record.get('reason') or ''}"]
    tokens = record.get("tokens")
    if isinstance(tokens, dict):
        lines.append(f"  tokens: in={tokens.get('input') or 0}, out={tokens.get('output') or 0}")
    lines.append("</step_finish>")
    return "\n".join(lines)


def _format_patch(record: dict) -> str:
    lines = ["<patch>", f"  hash: {truncate(str(record.get('hash') or ''), HASH_LIMIT)}"]
    files = record.get("files")
    if isinstance(files, list) and files:
        lines.append("  files:")
        lines.extend(f"    - {name}" for name in files)
    lines.append("</patch>")
    return "\n".join(lines)


def _file_source_text(record: dict) -> str:
    source = record.get("source")
    if not isinstance(source, dict):
        return ""
    text = source.get("text")
    if isinstance(text, dict):
        text = text.get("value")
    if not isinstance(text, str) and source.get("type") == "text":
        text = source.get("data")
    return text if isinstance(text, str) else ""


def _format_file(record: dict) -> str:
    name = record.get("filename") or record.get("title") or record.get("name") or record.get("path")
    source = record.get("source") if isinstance(record.get("source"), dict) else {}
    mime = record.get("mime") or record.get("mediaType") or source.get("media_type")

    header = "<file"
    if name:
        header += f' name="{name}"'
    if mime:
        header += f' type="{mime}"'
    lines = [header + ">"]

    text = _file_source_text(record)
    if text:
        source_lines = text.split("\n")
        lines.extend(source_lines[:FILE_PREVIEW_LINES])
        if len(source_lines) > FILE_PREVIEW_LINES:
            lines.append("  ... (truncated)")
    lines.append("</file>")
    return "\n".join(lines)


def _format_attached_files(record: dict) -> str:
    return f"<attached_files>{_as_text(record.get('text') or '')}</attached_files>"


def _format_image(record: dict) -> str:
    source = record.get("source") if isinstance(record.get("source"), dict) else {}
    mime = source.get("media_type") or record.get("mime") or record.get("mediaType")
    return f'<image type="{mime}">' if mime else "<image>"


def _format_generic(kind: str, record: Any) -> str:
    body = json.dumps(record, ensure_ascii=False, indent=2, default=str)
    return f"<{kind}>\n{body}\n</{kind}>"


_RECORD_FORMATTERS = {
    "tool": _format_tool_state,
    "tool_use": _format_tool_use,
    "tool-use": _format_tool_use,
    "tool_call": _format_tool_use,
    "tool-call": _format_tool_use,
    "tool_result": _format_tool_result,
    "tool-result": _format_tool_result,
    "step-start": _format_step_start,
    "step_start": _format_step_start,
    "step-finish": _format_step_finish,
    "step_finish": _format_step_finish,
    "patch": _format_patch,
    "file": _format_file,
    "resource": _format_file,
    "document": _format_file,
    "attached_files": _format_attached_files,
    "image": _format_image,
    "image_url": _format_image,
}


def format_record(record: dict, default_type: str = "") -> str:
    """Render a structured record by its ``type`` field."""
    kind = record.get("type") or default_type
    if not isinstance(kind, str):
        return _format_generic("data", record)
    if kind == "text":
        return _as_text(record.get("text") or record.get("content") or "")
    if kind in ("thinking", "reasoning"):
        return f"<thinking>{_as_text(record.get('thinking') or record.get('text') or '')}</thinking>"
    formatter = _RECORD_FORMATTERS.get(kind)
    if formatter:
        return formatter(record)
    return _format_generic(kind or "data", record)


def render_block(block: ContentBlock) -> str:
    """Render one content block as Markdown."""
    if block.kind == THINKING:
        return f"<thinking>{_as_text(block.data)}</thinking>"
    if block.kind == CODE:
        return f"<code>{_as_text(block.data)}</code>"

    payload = decode_payload(block.data)
    if block.kind == TEXT:
        # Text that holds a typed record renders as that record
        if record_type(payload):
            return format_record(payload)
        return _as_text(block.data)

    default_type = _DEFAULT_RECORD_TYPES.get(block.kind, block.kind)
    if isinstance(payload, dict):
        return format_record(payload, default_type)
    if isinstance(payload, list):
        return "\n".join(
            format_record(item, default_type) if isinstance(item, dict) else _as_text(item)
            for item in payload
        )
    return _format_generic(default_type, block.data)


def _header(session: UnifiedSession, stats: SessionStats) -> dict:
    return {
        "conv_id": session.id,
        "project_name": session.project_name,
        "project_path": session.directory,
        "start_time": format_time(session.start_time),
        "end_time": format_time(session.end_time),
        "duration": stats.duration_str,
        "user_messages": stats.user_messages,
        "tool_calls": stats.tool_calls,
        "input_tokens": stats.input_tokens,
        "output_tokens": stats.output_tokens,
        "agent": session.agent,
    }


def to_markdown(session: UnifiedSession, policy: StatsPolicy = DEFAULT_POLICY) -> str:
    """Render a session as a Markdown transcript with a front-matter header."""
    header = _header(session, session_stats(session, policy))
    front = "---\n" + "".join(f"{key}: {value}\n" for key, value in header.items()) + "---\n"

    blocks = []
    for message in session.messages:
        rendered = (render_block(block) for block in message.content)
        body = "\n\n".join(text for text in rendered if text)
        blocks.append(f"---\n**{message.role.capitalize()}**\n\n{body}\n")
    return front + "\n".join(blocks)


def to_json(session: UnifiedSession, policy: StatsPolicy = DEFAULT_POLICY) -> dict:
    """Structured summary of a session, with the same header fields as the Markdown."""
    data = _header(session, session_stats(session, policy))
    data["messages"] = [
        {
            "id": message.id,
            "role": message.role,
            "timestamp": to_iso(message.timestamp),
            "content": [{"type": block.kind, "data": block.data} for block in message.content],
        }
        for message in session.messages
    ]
    return data
