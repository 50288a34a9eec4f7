"""
Utility modules for CodeFlow: logging setup and console colouring.
"""
