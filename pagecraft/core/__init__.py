"""
Core services: settings, logging and the exception hierarchy.
"""
