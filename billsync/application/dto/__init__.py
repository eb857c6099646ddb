"""
Data Transfer Objects for the application layer.
"""
