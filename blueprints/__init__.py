"""
Blueprints package for the bracket prediction game
Contains modular JSON route blueprints for different features
"""

from .auth import auth_bp
from .predictions import predictions_bp
from .admin import admin_bp
from .public import public_bp

__all__ = ['auth_bp', 'predictions_bp', 'admin_bp', 'public_bp']
