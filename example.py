"""Minimal relay deployment that ships with the project.

Run ``uv sync`` once, then ``uv run example.py`` to boot the echo server on
port 3000. Every request is answered with a JSON document reflecting back its
headers, query parameters, body, method and path.

Set ``LOG_LEVEL`` to one of 10, 20, 30, 40 or 50 to pick the log threshold;
when it is unset the server defaults to 20 (INFO). Any other value aborts
startup with exit status 1.
"""

from __future__ import annotations

import os
import sys

from relay.cli import main


if __name__ == "__main__":
    sys.exit(main(["serve", "--port", os.getenv("PORT", "3000")]))
