"""
repobundle: bundle a local directory or a GitHub repository into a single
text document for LLM context.
"""

__version__ = '0.1.0'
