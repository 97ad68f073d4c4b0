"""
Core configuration, errors and secret handling for Book Lab.
"""
