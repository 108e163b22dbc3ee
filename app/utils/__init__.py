"""
Utility modules for the scheduling backend.
"""
