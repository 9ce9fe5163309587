"""
Template engine services
"""

from avdesign.services.apply import ApplicationEngine, build_grid_positions, generate_id
from avdesign.services.collaborators import SQLProjectService, SQLQuoteService, SQLRoomService
from avdesign.services.templates import TemplateService, TemplateWithContent
from avdesign.services.versions import VersionStore

__all__ = [
    "ApplicationEngine",
    "SQLProjectService",
    "SQLQuoteService",
    "SQLRoomService",
    "TemplateService",
    "TemplateWithContent",
    "VersionStore",
    "build_grid_positions",
    "generate_id",
]
