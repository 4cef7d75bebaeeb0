"""
lms_api -- request/response surface over the LMS kernel.

Collaborating UI and CLI layers go through these routes; they never write
status or amount fields directly.
"""

from lms_api.app import create_app

__all__ = ["create_app"]
