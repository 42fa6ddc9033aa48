"""
Interactive client for the chat relay.
"""

from .client import Client, render_line

__all__ = ['Client', 'render_line']
