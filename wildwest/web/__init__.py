"""
Frontend web server: HTML shell, status endpoints and the API proxy mount.
"""

from wildwest.web.server import FrontendServer, create_app, render_index

__all__ = ['FrontendServer', 'create_app', 'render_index']
