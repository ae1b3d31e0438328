"""cloudclip - short-lived, optionally password-protected clipboard sharing"""

__version__ = "2.0.0"
