"""
Phase Planning Platform
SQLAlchemy models package.

The shared ``db`` handle lives here so that every model module can do
``from phaseplan.models import db`` without importing the app factory.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
