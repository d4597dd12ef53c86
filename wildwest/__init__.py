"""
Wild West Frontend Server

Serves the browser game shell and proxies game-state API calls to a linked
backend component discovered from the environment.
"""

import logging

# Create logger for the package
logger = logging.getLogger('wildwest')

# Don't add handlers here - let the application configure logging

__version__ = '0.1.0'

__all__ = ['logger', '__version__']
