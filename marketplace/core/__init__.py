"""
Core package for shared utilities.

Configuration, structured logging, security helpers and the domain
exception hierarchy live here and are imported by every other layer.
"""
