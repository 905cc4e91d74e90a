"""Write rendered sessions and project index files to the output tree.

Layout::

    <output_root>/<agent>/<project_name>/<session_id>.md
    <output_root>/<agent>/<project_name>/<session_id>.json
    <output_root>/<agent>/<project_name>/project.json
"""

import json
import logging
import re
from pathlib import Path
from typing import Optional

from .date_utils import utc_now_iso
from .git import get_git_info
from .models import UnifiedSession
from .render import to_json, to_markdown
from .stats import DEFAULT_POLICY, StatsPolicy

logger = logging.getLogger(__name__)

PROJECT_INDEX_FILE = "project.json"

_UNSAFE_CHARS = re.compile(r"[\\/:\x00]+")


def safe_component(name: str, fallback: str = "unknown") -> str:
    """Make a name usable as a single path component."""
    cleaned = _UNSAFE_CHARS.sub("-", name or "").strip()
    if cleaned in ("", ".", ".."):
        return fallback
    return cleaned


def project_dir(output_root: Path, agent: str, project_name: str) -> Path:
    return Path(output_root) / safe_component(agent) / safe_component(project_name)


def session_output_paths(output_root: Path, session: UnifiedSession) -> tuple[Path, Path]:
    """(markdown path, json path) for a session."""
    directory = project_dir(output_root, session.agent, session.project_name)
    stem = safe_component(session.id, fallback="session")
    return directory / f"{stem}.md", directory / f"{stem}.json"


def write_session(
    session: UnifiedSession,
    output_root: Path,
    policy: StatsPolicy = DEFAULT_POLICY,
) -> bool:
    """Write the Markdown transcript and JSON summary of a session.

    Both documents are rendered before either file is touched, so a session
    that fails to render leaves nothing behind.
    """
    md_path, json_path = session_output_paths(output_root, session)
    try:
        markdown = to_markdown(session, policy)
        summary = json.dumps(to_json(session, policy), indent=2, ensure_ascii=False, default=str)
    except Exception as e:
        logger.warning(f"Failed to render {session.agent} session {session.id}: {e}")
        return False

    try:
        md_path.parent.mkdir(parents=True, exist_ok=True)
        md_path.write_text(markdown, encoding="utf-8")
        json_path.write_text(summary, encoding="utf-8")
    except OSError as e:
        logger.warning(f"Failed to write {md_path}: {e}")
        return False
    logger.debug(f"Wrote {md_path}")
    return True


def write_project_index(
    output_root: Path,
    agent: str,
    project_name: str,
    project_path: str,
    session_count: int,
    project_paths: Optional[list[str]] = None,
) -> bool:
    """Write project.json with the project's identity and git details.

    Sessions from different directories sharing a basename land in the same
    project directory; ``project_paths`` lists every directory when there is
    more than one.
    """
    path = project_dir(output_root, agent, project_name) / PROJECT_INDEX_FILE
    data = {
        "project_name": project_name,
        "project_path": project_path,
        "agent": agent,
        "session_count": session_count,
        "git": get_git_info(project_path).to_dict(),
        "scanned_at": utc_now_iso(),
    }
    if project_paths and len(project_paths) > 1:
        data["project_paths"] = list(project_paths)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
    except OSError as e:
        logger.warning(f"Failed to write {path}: {e}")
        return False
    return True
