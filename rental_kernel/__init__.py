"""
Rental kernel: shared infrastructure for the lease payment engine.

Exceptions, structured logging, database base classes and engine, the
injectable clock and workflow types, audit hashing, the sequence and
audit services, and the collaborator ports.
"""

__version__ = "0.1.0"
