"""Thin API launcher.

This is the uvicorn entrypoint. All application logic lives in the agora package.
Run with: uvicorn main:app --reload

Note: The app instance is created here (not in agora.app) to avoid import-time
side effects. This allows tests to import create_app without requiring all
environment variables to be configured.
"""

from agora.app import create_app

# create_app registers the request-id middleware last so it runs first
app = create_app()

__all__ = ["app"]
