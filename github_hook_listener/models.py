"""
Database Models

This module defines the database models for the application.
"""

from sqlalchemy import Column, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class WebHookEntry(Base):
    """Hook record of one repository, stored as encoded JSON."""

    __tablename__ = "webhooks"

    key = Column(String, primary_key=True, index=True)
    data = Column(Text, nullable=False)

    def __repr__(self):
        return f"<WebHookEntry(key={self.key})>"
