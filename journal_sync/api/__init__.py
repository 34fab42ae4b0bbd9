"""
API blueprints
"""
from .entries import entries_bp
from .sync import sync_bp

__all__ = ['entries_bp', 'sync_bp']
