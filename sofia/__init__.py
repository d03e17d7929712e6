"""
Sofía: conversational scheduling assistant.
"""

__version__ = "0.3.0"
