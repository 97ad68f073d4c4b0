"""
Command-line interface for Book Lab.
"""
