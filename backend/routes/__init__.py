"""
Invoice Archive Hub - Routes Package

Modular API routers for the archive service.
"""

from .archive import router as archive_router, set_dependencies as set_archive_deps

__all__ = [
    'archive_router', 'set_archive_deps',
]
