"""Mirror (destination) store module"""

from .base import MirrorStore
from .supabase_store import SupabaseMirror

__all__ = ["MirrorStore", "SupabaseMirror"]
