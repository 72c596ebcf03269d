"""Entry point for running Strata as a module.

Usage:
    python -m strata [command] [options]

Example:
    python -m strata levels graph.json
    python -m strata justify graph.json --output justifications.json
"""

from strata.cli import app

if __name__ == "__main__":
    app()
