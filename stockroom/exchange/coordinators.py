"""
Export and import job coordination.

``start`` calls validate synchronously, persist a job row and hand the work
to a Celery task once that row is committed; they never wait for the task.
Clients poll ``status``.
An export token can be fetched once: ``fetch_and_retire`` deletes the
artifact and the job in the same transaction that reads it.
"""
import logging
import uuid
from datetime import timedelta
from functools import partial

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.files.base import ContentFile
from django.core.files.storage import default_storage
from django.db import transaction
from django.utils import timezone

from stockroom.core.cache_signals import suspend_cache_signals
from stockroom.core.cache_utils import invalidate_dashboard_cache
from stockroom.core.exceptions import NotFound, StockroomError
from stockroom.core.utils import create_audit_log
from .exporters import build_workbook, clean_fields
from .importers import IMPORT_HANDLERS, ROW_ERRORS, read_rows
from .models import ExportJob, ImportJob
from .signals import import_finished
from .workbook_templates import template_workbook

logger = logging.getLogger(__name__)


def _file_extension(name):
    return name.rsplit('.', 1)[-1].lower() if name and '.' in name else ''


class ExportJobCoordinator:

    @staticmethod
    def start(entity_type, fields, user=None):
        """Queue an export of the selected fields; returns the token to poll"""
        fields = clean_fields(entity_type, fields)
        now = timezone.now()
        job = ExportJob.objects.create(
            token=uuid.uuid4().hex,
            entity_type=entity_type,
            fields=fields,
            file_name=f"{entity_type}_{timezone.localtime(now).strftime('%Y%m%d_%H%M%S')}.xlsx",
            created_by=user if user and user.is_authenticated else None,
            expires_at=now + timedelta(seconds=settings.STOCKROOM_EXPORT_TTL_SECONDS),
        )
        logger.info(f"Export {job.token} of {entity_type} queued ({', '.join(fields)})")

        from .tasks import generate_export
        # Workers must see the committed job row
        transaction.on_commit(partial(generate_export.delay, job.token))

        return {
            'status': 'queued',
            'file': job.token,
            'poll_interval': settings.STOCKROOM_EXPORT_POLL_INTERVAL_SECONDS,
        }

    @classmethod
    def status(cls, token):
        job = ExportJob.objects.filter(token=token).first()
        if job is None:
            raise NotFound('Export file not found.')
        if job.is_expired:
            cls._discard(job)
            raise NotFound('Export file has expired.')
        return {'ready': job.ready, 'failed': job.status == ExportJob.STATUS_FAILED}

    @classmethod
    def fetch_and_retire(cls, token):
        """Return (file_name, content) of a ready export and delete it; a token works once"""
        content = None
        with transaction.atomic():
            job = ExportJob.objects.select_for_update().filter(token=token).first()
            if job is not None and job.is_expired:
                cls._discard(job)
            elif job is not None and job.ready:
                with default_storage.open(job.file_path, 'rb') as artifact:
                    content = artifact.read()
                cls._discard(job)

        if content is None:
            raise NotFound('Export file not found.')
        logger.info(f"Export {token} fetched and retired")
        return job.file_name, content

    @staticmethod
    def _discard(job):
        if job.file_path:
            default_storage.delete(job.file_path)
        job.delete()

    @classmethod
    def purge_expired(cls):
        """Delete expired export artifacts and their jobs. Returns how many were purged."""
        purged = 0
        for job in ExportJob.objects.filter(expires_at__lte=timezone.now()):
            cls._discard(job)
            purged += 1
        if purged:
            logger.info(f"Purged {purged} expired export(s)")
        return purged

    @staticmethod
    def generate(token):
        """Build and store the workbook of a queued export (runs on a worker)"""
        job = ExportJob.objects.filter(token=token, status=ExportJob.STATUS_QUEUED).first()
        if job is None:
            logger.warning(f"Export {token} is no longer queued, skipping")
            return None

        try:
            content = build_workbook(job.entity_type, job.fields)
            path = default_storage.save(f'exports/{job.token}.xlsx', ContentFile(content))
        except Exception as e:
            logger.error(f"Export {token} failed: {str(e)}", exc_info=True)
            ExportJob.objects.filter(pk=job.pk).update(
                status=ExportJob.STATUS_FAILED, error=str(e), completed_at=timezone.now()
            )
            return ExportJob.STATUS_FAILED

        updated = ExportJob.objects.filter(pk=job.pk, status=ExportJob.STATUS_QUEUED).update(
            status=ExportJob.STATUS_READY, file_path=path, completed_at=timezone.now()
        )
        if not updated:
            # Purged while generating
            default_storage.delete(path)
            return None
        logger.info(f"Export {token} ready at {path}")
        return ExportJob.STATUS_READY


class ImportJobCoordinator:

    @staticmethod
    def _rejected(message):
        logger.warning(f"Import rejected: {message}")
        return {'status': 'rejected', 'message': message}

    @classmethod
    def start(cls, entity_type, upload, user=None):
        """
        Store an upload and queue its processing.

        Returns ``{'status': 'queued', 'job': id}``, or ``{'status':
        'rejected', 'message': ...}`` without creating a job.
        """
        if entity_type not in IMPORT_HANDLERS:
            return cls._rejected(f'Unknown import type: {entity_type}.')
        if upload is None:
            return cls._rejected('Please choose a file to import.')

        allowed = settings.STOCKROOM_IMPORT_ALLOWED_EXTENSIONS
        extension = _file_extension(upload.name)
        if extension not in allowed:
            return cls._rejected(f'Only {", ".join(allowed)} files can be imported.')
        max_bytes = settings.STOCKROOM_IMPORT_MAX_UPLOAD_BYTES
        if upload.size > max_bytes:
            return cls._rejected(f'File is larger than {max_bytes // (1024 * 1024)} MB.')

        path = default_storage.save(f'imports/{uuid.uuid4().hex}.{extension}', upload)
        job = ImportJob.objects.create(
            entity_type=entity_type,
            file_path=path,
            original_name=upload.name,
            created_by=user if user and user.is_authenticated else None,
        )
        logger.info(f"Import {job.id} of {entity_type} queued from {upload.name}")

        from .tasks import process_import
        transaction.on_commit(partial(process_import.delay, str(job.id)))

        return {'status': 'queued', 'job': str(job.id)}

    @staticmethod
    def status(job_id):
        try:
            job_id = uuid.UUID(str(job_id))
        except ValueError:
            raise NotFound('Import job not found.')
        job = ImportJob.objects.filter(pk=job_id).first()
        if job is None:
            raise NotFound('Import job not found.')
        return {
            'job': str(job.id),
            'entity_type': job.entity_type,
            'file': job.original_name,
            'status': job.status,
            'processed': job.processed_count,
            'succeeded': job.success_count,
            'failed': job.error_count,
            'errors': job.errors,
            'error': job.error,
        }

    @staticmethod
    def template_workbook(entity_type):
        return template_workbook(entity_type)

    @staticmethod
    def _finish(job):
        logger.info(
            f"Import {job.id} of {job.entity_type} {job.status}: "
            f"{job.success_count} imported, {job.error_count} skipped"
        )
        create_audit_log(
            action='imported',
            model_name=job.entity_type,
            object_id=job.id,
            object_name=job.original_name,
            user=job.created_by,
            changes={
                'status': job.status,
                'succeeded': job.success_count,
                'failed': job.error_count,
            },
        )
        import_finished.send(sender=ImportJobCoordinator, job=job)

    @classmethod
    def _fail(cls, job, message):
        job.status = ImportJob.STATUS_FAILED
        job.error = message
        job.finished_at = timezone.now()
        job.save()
        cls._finish(job)
        return job.status

    @classmethod
    def process(cls, job_id):
        """Parse the upload and import it row by row (runs on a worker)"""
        job = ImportJob.objects.select_related('created_by').filter(pk=job_id, status=ImportJob.STATUS_QUEUED).first()
        if job is None:
            logger.warning(f"Import {job_id} is no longer queued, skipping")
            return None

        job.status = ImportJob.STATUS_PROCESSING
        job.started_at = timezone.now()
        job.save(update_fields=['status', 'started_at'])

        handler = IMPORT_HANDLERS[job.entity_type]
        errors = []
        succeeded = 0
        try:
            with default_storage.open(job.file_path, 'rb') as upload:
                rows = read_rows(upload, _file_extension(job.file_path))
            job.processed_count = len(rows)

            with suspend_cache_signals():
                for row_number, row in rows:
                    try:
                        with transaction.atomic():
                            handler(row, user=job.created_by)
                        succeeded += 1
                    except ROW_ERRORS as e:
                        if isinstance(e, StockroomError):
                            message = e.message
                        elif isinstance(e, DjangoValidationError):
                            message = '; '.join(e.messages)
                        else:
                            message = str(e)
                        errors.append({'row': row_number, 'message': message})
                        logger.warning(f"Import {job.id} row {row_number} skipped: {message}")
        except StockroomError as e:
            logger.error(f"Import {job.id} failed: {e.message}")
            return cls._fail(job, e.message)
        except Exception as e:
            logger.error(f"Import {job.id} failed: {str(e)}", exc_info=True)
            job.success_count = succeeded
            job.error_count = len(errors)
            job.errors = errors
            invalidate_dashboard_cache()
            return cls._fail(job, str(e))
        finally:
            # Uploads are read once and never kept
            default_storage.delete(job.file_path)

        invalidate_dashboard_cache()

        job.status = ImportJob.STATUS_DONE
        job.success_count = succeeded
        job.error_count = len(errors)
        job.errors = errors
        job.finished_at = timezone.now()
        job.save()
        cls._finish(job)
        return job.status
