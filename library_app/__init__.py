"""Library App - Core Application Package

This package contains the core application modules including:
- API endpoints (api.py)
- CLI interface (cli.py)
- Domain models (models.py)
- Database layer and repositories (database.py, repositories.py)
- Borrowing, catalog, identity and notification services (services/)
"""

__version__ = "1.0.0"
