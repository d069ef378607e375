"""Calendar Store: data access consumed by the engine

Components:
    base.py: Abstract CalendarStore interface
    sqlite_store.py: SQLite reference implementation
"""
