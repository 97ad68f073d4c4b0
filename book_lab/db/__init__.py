"""
Persistent storage for Book Lab.
"""
