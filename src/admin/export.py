"""Streaming CSV export of all users."""

from typing import Iterator

from sqlalchemy import or_, and_

from src.database.models import UserModel
from src.utils.time import now_utc, isoformat

CSV_HEADER = ["ID", "Name", "Email", "Role", "Email Verified", "Created At", "Last Login Method", "Banned"]
BATCH_SIZE = 1000


def export_filename() -> str:
    return f"users-export-{now_utc().strftime('%Y-%m-%d')}.csv"


def _quote(value) -> str:
    return '"' + str(value or "").replace('"', '""') + '"'


def _flag(value) -> str:
    return "true" if value else "false"


def csv_row(user: UserModel) -> str:
    return ",".join([
        user.id,
        _quote(user.name),
        user.email,
        user.role or "",
        _flag(user.email_verified),
        isoformat(user.created_at) or "",
        user.last_login_method or "",
        _flag(user.banned),
    ])


def iter_users(db, batch_size: int = BATCH_SIZE) -> Iterator[UserModel]:
    """Newest first, keyset-paginated on (created_at, id)"""
    last = None
    while True:
        query = db.query(UserModel).order_by(UserModel.created_at.desc(), UserModel.id.desc())
        if last is not None:
            query = query.filter(
                or_(
                    UserModel.created_at < last.created_at,
                    and_(UserModel.created_at == last.created_at, UserModel.id < last.id),
                )
            )
        batch = query.limit(batch_size).all()
        if not batch:
            return
        yield from batch
        if len(batch) < batch_size:
            return
        last = batch[-1]


def stream_users_csv(db_manager, batch_size: int = BATCH_SIZE) -> Iterator[str]:
    yield ",".join(CSV_HEADER) + "\n"
    with db_manager.session_context() as db:
        for user in iter_users(db, batch_size):
            yield csv_row(user) + "\n"
