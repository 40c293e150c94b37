"""
Backend package for the portfolio site.

This package provides a FastAPI application serving projects and
certificates, with an admin API backed by SQL or Appwrite stores.
"""
