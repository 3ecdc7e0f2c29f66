"""
LiveCoord Supervision Package.

Runs the native watcher/server as an owned subprocess.
Requires Python 3.11+.
"""

from supervision.process import ProcessSupervisor

__all__ = ["ProcessSupervisor"]
