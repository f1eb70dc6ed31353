"""
Media Relay - upload relay and catalog for a media gallery.

This package contains the complete application:
- core: Framework-agnostic upload orchestration
- infrastructure: Object store and catalog integrations
- api: FastAPI routes and dependencies
- config: Application configuration
"""

__version__ = "0.1.0"
