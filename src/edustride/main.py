"""Main entry point for the EduStride CLI.

Usage:
    python -m edustride.main --help
    edustride --help  # If installed via pip/uv
"""

from edustride.cli import main

if __name__ == "__main__":
    main()
