"""
Scheduling backend test suite
"""
