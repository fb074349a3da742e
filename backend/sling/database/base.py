"""Declarative base for the ledger's SQLAlchemy models."""

from sqlalchemy.orm import declarative_base

Base = declarative_base()
