"""
AIforHealth API

FastAPI backend for clinic discovery, doctor appointment booking,
notifications and personal health records.
"""

__version__ = "1.0.0"
