"""Image updater.

Checks running container images against registry tags, GitHub releases,
local git checkouts and custom HTTP endpoints, and performs in-place
updates (pull → build → backup → run → validate) with automatic rollback.
"""

__version__ = "0.1.0"
