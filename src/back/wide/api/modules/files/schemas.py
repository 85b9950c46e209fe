"""Pydantic schemas for file actions."""
from typing import Optional

from pydantic import BaseModel


class ActionRequest(BaseModel):
    """Body of a file action request.

    Every field is optional at the schema level; presence is checked by the
    dispatcher so that missing values become structured failures instead of
    validation errors.
    """
    model_config = {"extra": "ignore"}

    action: Optional[str] = None
    key: Optional[str] = None
    filename: Optional[str] = None
    content: Optional[str] = None
    folder: Optional[str] = None
    new_filename: Optional[str] = None


class FileEntry(BaseModel):
    """One directory child as reported by the list action."""
    name: str
    is_dir: bool
    mime_type: Optional[str] = None
    size: int = 0
