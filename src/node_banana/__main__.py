"""
Entry point for running Node Banana as a module.

Usage:
    python -m node_banana run workflow.json
"""

import sys

from node_banana.main import main

if __name__ == "__main__":
    sys.exit(main())
