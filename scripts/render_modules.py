#!/usr/bin/env python3
"""
Render a composition of infrastructure modules to JSON.

Usage:
    python scripts/render_modules.py composition.yaml --account-id 123456789012 -o build/rendered.json
"""

import sys

from infra_modules.cli import main

if __name__ == "__main__":
    sys.exit(main())
