# Services package initialization
from .export_service import ExportRequest, ExportResult, export_image, export_buffer, export_filename
from .render_service import RenderService, RenderTicket, RenderOutcome

__all__ = [
    'ExportRequest',
    'ExportResult',
    'export_image',
    'export_buffer',
    'export_filename',
    'RenderService',
    'RenderTicket',
    'RenderOutcome',
]
