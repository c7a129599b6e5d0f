# API module
# REST API for browser/frontend communication:
# - Image upload + conversion endpoint
# - Upload limits
# - Health check

from .server import create_app

__all__ = ["create_app"]
