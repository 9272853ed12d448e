"""
Choice Story - personalized interactive children's stories.

This package provides the text generation core: multi-provider generation
with retries, model fallback and prompt-length control.
"""

__version__ = "0.1.0"
