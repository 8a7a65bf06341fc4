"""Library Circulation - Core Application Package

This package contains the core application modules including:
- API endpoints (api.py)
- Loan lifecycle management (loans.py)
- Book and user records (library.py)
- CLI interface (main.py)
- Data models (models.py)
- Database and record store layer (database.py, store.py)
"""
