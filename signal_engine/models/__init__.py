"""
Governance Signal Engine
SQLAlchemy extension instance shared by all model modules.

Usage:
    from signal_engine.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
