"""retry_guard.version

Build metadata and the human-readable version string.

A snapshot of the build environment is written to the package resource
`_build_info.json` by scripts/generate_build_info.py. Development checkouts
usually don't have one; everything here degrades to the bare version.
"""

from __future__ import annotations

import json
import os
import platform
import subprocess
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from importlib import resources
from typing import Any, Dict, Optional

BUILD_INFO_RESOURCE = "_build_info.json"
VERSION_ENV_VAR = "RETRY_GUARD_VERSION"


@dataclass(frozen=True)
class BuildInfo:
    build_time: str        # ISO-8601, UTC
    git_commit: str = "unknown"
    git_branch: str = "unknown"
    platform: str = "unknown"
    python_version: str = "unknown"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BuildInfo":
        return cls(
            build_time=str(data.get("build_time", "")),
            git_commit=str(data.get("git_commit", "unknown")),
            git_branch=str(data.get("git_branch", "unknown")),
            platform=str(data.get("platform", "unknown")),
            python_version=str(data.get("python_version", "unknown")),
        )


def _git(*args: str) -> str:
    try:
        out = subprocess.run(
            ["git", *args], capture_output=True, text=True, check=True, timeout=5,
        )
    except (OSError, subprocess.SubprocessError):
        return "unknown"
    return out.stdout.strip() or "unknown"


def collect_build_info() -> BuildInfo:
    """Snapshot the current environment."""
    commit = _git("rev-parse", "HEAD")
    return BuildInfo(
        build_time=datetime.now(timezone.utc).isoformat(),
        git_commit=commit[:8] if commit != "unknown" else commit,
        git_branch=_git("rev-parse", "--abbrev-ref", "HEAD"),
        platform=f"{platform.system().lower()}-{platform.machine().lower()}",
        python_version=platform.python_version(),
    )


def load_build_info() -> Optional[BuildInfo]:
    """Build snapshot shipped with the package, or None."""
    try:
        raw = (resources.files("retry_guard") / BUILD_INFO_RESOURCE).read_text(encoding="utf-8")
    except (FileNotFoundError, OSError):
        return None
    try:
        data = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    return BuildInfo.from_dict(data)


def get_version() -> str:
    env = os.environ.get(VERSION_ENV_VAR)
    if env:
        return env
    from . import __version__
    return __version__


def format_version_info(version: str, info: Optional[BuildInfo] = None) -> str:
    """Multi-line version banner for `retry-guard version`."""
    lines = [f"retry-guard v{version}"]
    if info is None:
        return lines[0]

    if info.build_time:
        try:
            built = datetime.fromisoformat(info.build_time.replace("Z", "+00:00"))
            lines.append(f"Built: {built.strftime('%Y-%m-%d %H:%M:%S %Z').strip()}")
        except ValueError:
            lines.append(f"Built: {info.build_time}")
    if info.git_commit and info.git_commit != "unknown":
        lines.append(f"Git: {info.git_branch}@{info.git_commit}")
    if info.platform and info.platform != "unknown":
        lines.append(f"Platform: {info.platform}")
    if info.python_version and info.python_version != "unknown":
        lines.append(f"Python: {info.python_version}")
    return "\n".join(lines)
