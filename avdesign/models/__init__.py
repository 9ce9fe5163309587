"""
SQLAlchemy Models for the template engine and the entities it creates
"""

from avdesign.models.template import Template, TemplateVersion
from avdesign.models.room import Project, Quote, Room

__all__ = [
    "Template",
    "TemplateVersion",
    "Project",
    "Room",
    "Quote",
]
