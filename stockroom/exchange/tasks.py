"""
Export and import tasks
Run on the data_processing queue; the coordinators only enqueue them.
"""
from celery import shared_task
import logging

from .coordinators import ExportJobCoordinator, ImportJobCoordinator

logger = logging.getLogger(__name__)


@shared_task
def generate_export(token):
    """Build the workbook of a queued export"""
    return ExportJobCoordinator.generate(token)


@shared_task
def process_import(job_id):
    """Import every row of an uploaded file"""
    return ImportJobCoordinator.process(job_id)


@shared_task
def purge_expired_exports():
    """Periodic cleanup of export files nobody fetched"""
    purged = ExportJobCoordinator.purge_expired()
    logger.info(f"Expired export cleanup removed {purged} file(s)")
    return purged
