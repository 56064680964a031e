"""Library Catalog - Core Package

This package contains the client-side core of the catalog:
- Entity models (models.py)
- Session and persisted credentials (session.py)
- Role-based access policy (policy.py)
- Saved-books relation (saved_books.py)
- Library facade tying them together (library.py)
"""
