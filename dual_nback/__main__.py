from __future__ import annotations

import sys
from pathlib import Path


def _ensure_repo_root_on_path() -> None:
    """Put the directory holding this package on ``sys.path``.

    Needed when the file is run directly (``python dual_nback/__main__.py``)
    rather than with ``python -m dual_nback``.
    """
    repo_root = str(Path(__file__).resolve().parent.parent)
    if repo_root not in sys.path:
        sys.path.insert(0, repo_root)


if __package__:
    from .app import run
else:
    _ensure_repo_root_on_path()
    from dual_nback.app import run


def main() -> int:
    """Entry point for running the trainer from the command line."""
    return run()


if __name__ == "__main__":
    raise SystemExit(main())
