"""Allow running dbdiff as ``python -m dbdiff``."""

import sys

from .cli import main

sys.exit(main())
