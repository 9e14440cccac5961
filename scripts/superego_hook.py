#!/usr/bin/env python3
"""
Superego hook entry point.

Called by: host hook configuration (SessionStart, UserPromptSubmit,
PreToolUse, Stop, PreCompact)

Equivalent to `sg hook <Event>` for checkouts where the package is not
installed. Hooks receive JSON via stdin and print a hook response on
stdout.
"""

from __future__ import annotations

import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from superego.cli import main

if __name__ == "__main__":
    event = sys.argv[1] if len(sys.argv) > 1 else "Stop"
    sys.exit(main(["hook", event]))
