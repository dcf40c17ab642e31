"""
Hosted chat model factories.
"""
