"""
FastAPI dependencies exposing the import services held on ``app.state``.

The services are built once in ``create_app`` and torn down with the
application, so tests can build an app around their own registry and store.
"""
from fastapi import Request

from catalog_import.domain.imports.executor import ImportDispatcher
from catalog_import.domain.imports.progress import ProgressReporter
from catalog_import.domain.imports.registry import JobRegistry
from catalog_import.domain.imports.retry import RetryCoordinator
from catalog_import.domain.imports.validators import ValidatorRegistry


def get_dispatcher(request: Request) -> ImportDispatcher:
    return request.app.state.dispatcher


def get_progress_reporter(request: Request) -> ProgressReporter:
    return request.app.state.progress


def get_retry_coordinator(request: Request) -> RetryCoordinator:
    return request.app.state.retry


def get_validators(request: Request) -> ValidatorRegistry:
    return request.app.state.validators


def get_upload_limit_bytes(request: Request) -> int:
    return request.app.state.upload_max_bytes


def get_registry(request: Request) -> JobRegistry:
    return request.app.state.registry
