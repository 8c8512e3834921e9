"""
Service layer for statement extraction.
"""
