"""
API routers for the scheduling backend
"""

__all__ = []
