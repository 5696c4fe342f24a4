"""Allow running as python -m aznfs."""

import sys

from aznfs.cli import main

sys.exit(main())
