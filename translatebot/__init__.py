"""
Matrix Translation Bot

A Matrix bot that translates room messages into Hebrew with the Anthropic
Messages API, after filtering them against admin-managed keyword patterns.
"""

__version__ = "1.0.0"
