"""Allow ``python -m fileservice``."""

import sys

from fileservice.cli import main

sys.exit(main())
