"""Git repository details for project index files."""

import logging
import subprocess
from dataclasses import asdict, dataclass
from pathlib import Path

from .config import GIT_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)


@dataclass
class GitInfo:
    branch: str = ""
    remote: str = ""
    commits: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def _git(cwd: Path, *args: str) -> str | None:
    try:
        result = subprocess.run(
            ["git", "-C", str(cwd), *args],
            capture_output=True, text=True, timeout=GIT_TIMEOUT_SECONDS
        )
    except (subprocess.TimeoutExpired, OSError) as e:
        logger.debug(f"git {' '.join(args)} failed in {cwd}: {e}")
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip()


def get_git_info(path: str | Path) -> GitInfo:
    """Branch, origin remote and commit count of the repository at ``path``.

    Each lookup that fails leaves its field at the empty default.
    """
    info = GitInfo()
    if not path or not Path(path).is_dir():
        return info
    path = Path(path)

    info.branch = _git(path, "rev-parse", "--abbrev-ref", "HEAD") or ""
    info.remote = _git(path, "remote", "get-url", "origin") or ""
    count = _git(path, "rev-list", "--count", "HEAD")
    if count and count.isdigit():
        info.commits = int(count)
    return info
