"""
Policyflow: quote-to-policy insurance workflow engine.
"""

__version__ = "1.0.0"
