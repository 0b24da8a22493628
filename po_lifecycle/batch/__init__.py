# po_lifecycle/batch/__init__.py
from .import_job import run_post_import_job

__all__ = ['run_post_import_job']
