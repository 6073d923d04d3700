"""Book catalog service.

A FastAPI application exposing create, read, update and delete operations on
book records stored in a relational database, with titles kept unique.
"""

__version__ = "0.1.0"
