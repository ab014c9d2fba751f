from fastapi import Request

from uplite.config import Settings
from uplite.services.storage_manager import StorageManager


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_storage_manager(request: Request) -> StorageManager:
    return request.app.state.storage_manager
