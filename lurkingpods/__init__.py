"""
LurkingPods

Backend for a subscription-based daily podcast app with AI-generated content.
"""

__version__ = "1.0.0"
