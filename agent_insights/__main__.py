"""Allow running as ``python -m agent_insights``."""

import sys

from .main import main

sys.exit(main())
