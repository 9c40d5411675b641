"""
PiShield v1 - Security alert monitoring backend
"""

__version__ = "1.0.0"
