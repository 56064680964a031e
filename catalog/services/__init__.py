"""Library Catalog - Services Package

This package contains the modules that talk to the catalog REST service:
- HTTP client abstraction
- Book, Author, Genre and User repositories
"""
