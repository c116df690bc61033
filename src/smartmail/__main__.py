# =============================================================================
# SmartMail Entry Point for `python -m smartmail`
# =============================================================================
# Equivalent to running the 'smartmail' command after installation.
# =============================================================================

import sys

from smartmail.app import main

if __name__ == "__main__":
    sys.exit(main())
