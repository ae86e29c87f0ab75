"""
Configuration module for Chat Table Watch.

This module provides global settings for the application.
"""

from config.settings import Settings, load_settings

__all__ = ['Settings', 'load_settings']
