"""
Modules package for rfbootstrap.

Submodules are imported explicitly by their callers.
"""
