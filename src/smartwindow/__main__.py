"""Allow ``python -m smartwindow``."""

import sys

from smartwindow.cli import main

sys.exit(main())
