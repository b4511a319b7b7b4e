# =============================================================================
# Silver IMAP Entry Point for `python -m silver_imap`
# =============================================================================
# This module allows Silver IMAP to be run as a Python module:
#
#   python -m silver_imap
#
# This is equivalent to running the 'silver-imap' command after installation.
# =============================================================================

import sys

from silver_imap.app import main

if __name__ == "__main__":
    sys.exit(main())
