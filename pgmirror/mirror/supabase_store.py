"""Supabase mirror store"""

from typing import Any, Dict, List, Optional

import httpx
from loguru import logger
from postgrest.exceptions import APIError
from supabase import Client, create_client

from ..exceptions import ConfigurationError, MirrorWriteError
from .base import MirrorStore


# SQLSTATE classes worth retrying: connection exception, transaction
# rollback, insufficient resources, operator intervention
TRANSIENT_SQLSTATE_CLASSES = {"08", "40", "53", "57"}
TRANSIENT_HTTP_STATUS = {408, 429}


class SupabaseMirror(MirrorStore):
    """Writes mirror rows through the Supabase REST API"""

    def __init__(self, client: Client):
        self.client = client

    @classmethod
    def from_credentials(cls, url: Optional[str], key: Optional[str]) -> "SupabaseMirror":
        if not url or not key:
            raise ConfigurationError("Missing SUPABASE_URL or SUPABASE_KEY environment variables")
        return cls(create_client(url, key))

    def upsert(self, table: str, rows: List[Dict[str, Any]], on_conflict: str) -> None:
        if not rows:
            return
        self._execute(
            f"upsert into {table}",
            lambda: self.client.table(table).upsert(
                rows,
                on_conflict=on_conflict,
                ignore_duplicates=False
            ).execute()
        )

    def delete(self, table: str, key_column: str, key_value: Any) -> None:
        self._execute(
            f"delete from {table}",
            lambda: self.client.table(table).delete().eq(key_column, key_value).execute()
        )

    def ping(self, table: str) -> None:
        self._execute(
            f"select from {table}",
            lambda: self.client.table(table).select("*").limit(1).execute()
        )
        logger.info("Supabase connection successful")

    def _execute(self, description: str, request):
        try:
            return request()
        except APIError as e:
            code = getattr(e, "code", None)
            message = getattr(e, "message", None) or getattr(e, "details", None) or str(e)
            raise MirrorWriteError(
                f"Supabase {description} error: {message}",
                code=code,
                retryable=_is_transient_code(code)
            ) from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise MirrorWriteError(
                f"Supabase {description} error: HTTP {status}",
                code=str(status),
                retryable=status in TRANSIENT_HTTP_STATUS or status >= 500
            ) from e
        except httpx.HTTPError as e:
            raise MirrorWriteError(f"Supabase {description} error: {e}") from e


def _is_transient_code(code: Optional[str]) -> bool:
    if not code:
        return True
    if code.isdigit() and len(code) == 3:
        status = int(code)
        return status in TRANSIENT_HTTP_STATUS or status >= 500
    return code[:2] in TRANSIENT_SQLSTATE_CLASSES
