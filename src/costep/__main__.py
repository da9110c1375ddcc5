"""Allow ``python -m costep``."""

import sys

from costep.cli import main

sys.exit(main())
