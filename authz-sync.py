#!/usr/bin/env python3
"""
authz-sync Entry Point

This script provides a simple entry point for running authz-sync from a
checkout. All application logic is contained in the authz_sync.libs.main_app
module.
"""

import sys
from pathlib import Path

# Make the authz_sync package importable without installing it
sys.path.insert(0, str(Path(__file__).parent))

# Logging will be configured by main_app.main()

if __name__ == "__main__":
    from authz_sync.libs.main_app import main
    main()
