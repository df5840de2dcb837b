"""
Development Mock API

FastAPI stand-in for the donation platform backend, used for local
runs and end-to-end tests of donation_client.
"""

from .data import MockDatabase
from .server import create_app

__all__ = ['MockDatabase', 'create_app']
