"""Administrative user management, CSV export and avatar storage."""

from src.admin.avatars import AvatarStore
from src.admin.export import stream_users_csv, export_filename
from src.admin.service import AdminService

__all__ = ["AdminService", "AvatarStore", "stream_users_csv", "export_filename"]
