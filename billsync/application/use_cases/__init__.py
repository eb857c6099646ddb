"""
Use cases for the application layer.
"""
