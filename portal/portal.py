"""
Summit Portal — client
======================
Keeps the portal session alive (refreshing expired tokens) and delivers
activity telemetry, queueing it on disk while the API is unreachable.

Usage:
    python portal.py [run|login|logout|status|flush]
"""

import sys

from portal_core.runner import main, run_with_auto_restart


if __name__ == "__main__":
    if len(sys.argv) == 1:
        run_with_auto_restart()
    else:
        sys.exit(main())
