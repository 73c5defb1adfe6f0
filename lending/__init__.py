"""Library Lending - Core Package

This package contains the core lending modules including:
- Catalog and lending ledger (library.py)
- Data models (book.py, loan.py, reservation.py, admin.py)
- Database layer (database.py)
- Error taxonomy and operation results (errors.py, results.py)
"""
