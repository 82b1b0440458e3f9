"""
Static Cloner - clone websites into static files for offline hosting.

This package discovers the pages of a site, downloads pages and assets,
rewrites links to local relative paths, and marks content that needs a
backend.
"""

__version__ = "1.0.0"
__author__ = "Static Cloner Team"
