"""
LiveCoord API Package.

FastAPI app serving the watched directory and the live-reload channel.
Requires Python 3.11+.
"""

# Import app lazily to avoid circular imports
# Use: from api.main import app
