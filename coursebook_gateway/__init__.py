"""
Coursebook API gateway.

Accepts HTTP requests, authenticates them, publishes commands to the message
broker and bridges worker completions back to the waiting HTTP callers.
"""

__version__ = "0.1.0"
