"""
API package for Chat Table Watch.

This package provides the HTTP server for table detection and extraction.
"""

from api.server import create_app

__all__ = ['create_app']
