"""
Business logic services package.

WHY: Invoice numbering, checkout and webhook reconciliation sit between
the API routes and the DAOs (API → Service → DAO).
"""
