"""Command line interface for stimuli_uploader."""
from .main import app, main

__all__ = ['app', 'main']
