"""imgrelay — origin-gated image relay.

Fetches a remote image on behalf of a browser page and re-serves it with
CORS headers for the configured set of allowed origins.
"""

__version__ = "1.0.0"
