#!/usr/bin/env python3
"""Entry point: python python/main.py audit|config"""

import sys
from pathlib import Path

# Allow running from a checkout without installing
_python_dir = Path(__file__).parent.absolute()
if str(_python_dir) not in sys.path:
    sys.path.insert(0, str(_python_dir))

from retention_audit.cli import main  # noqa: E402

if __name__ == "__main__":
    sys.exit(main())
