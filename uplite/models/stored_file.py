from pydantic import BaseModel


class StoredFile(BaseModel):
    name: str
    size: int
    mtime: float


class FileInfo(BaseModel):
    name: str
    size: str
    modified: str
    absolute_path: str
    os: str
    arch: str
    host: str
    user_ip: str
