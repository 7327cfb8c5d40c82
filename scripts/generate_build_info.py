"""Write src/retry_guard/_build_info.json with the current build environment.

Run before building a distribution:
    python scripts/generate_build_info.py
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT / "src"))

from retry_guard.version import BUILD_INFO_RESOURCE, collect_build_info


def main() -> None:
    info = collect_build_info()
    out_path = ROOT / "src" / "retry_guard" / BUILD_INFO_RESOURCE
    out_path.write_text(json.dumps(info.to_dict(), indent=2) + os.linesep, encoding="utf-8")

    print("Build info generated:")
    print(f"   Build time: {info.build_time}")
    print(f"   Git: {info.git_branch}@{info.git_commit}")
    print(f"   Platform: {info.platform}")
    print(f"   Python: {info.python_version}")
    print(f"   File: {out_path}")


if __name__ == "__main__":
    main()
