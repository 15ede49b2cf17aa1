"""analysis id propagation. every log record and ai call made during one analysis carries the same id."""
import uuid
import threading
from contextvars import ContextVar
from typing import Optional


# async-safe, copied into tasks and asyncio.to_thread workers
_analysis_id: ContextVar[Optional[str]] = ContextVar('analysis_id', default=None)

# fallback for plain threads started outside the context
_thread_local = threading.local()


def generate_analysis_id() -> str:
    """8-character hex string"""
    return uuid.uuid4().hex[:8]


def set_analysis_id(analysis_id: str) -> None:
    _analysis_id.set(analysis_id)
    _thread_local.analysis_id = analysis_id


def get_analysis_id() -> Optional[str]:
    ctx_id = _analysis_id.get()
    if ctx_id is not None:
        return ctx_id

    return getattr(_thread_local, 'analysis_id', None)


def clear_analysis_id() -> None:
    _analysis_id.set(None)
    if hasattr(_thread_local, 'analysis_id'):
        delattr(_thread_local, 'analysis_id')


class AnalysisContext:
    """context manager binding an analysis id.

        with AnalysisContext() as analysis_id:
            ...
    """

    def __init__(self, analysis_id: Optional[str] = None):
        self.analysis_id = analysis_id or generate_analysis_id()
        self.previous_id: Optional[str] = None

    def __enter__(self) -> str:
        self.previous_id = get_analysis_id()
        set_analysis_id(self.analysis_id)
        return self.analysis_id

    def __exit__(self, *args):
        if self.previous_id is not None:
            set_analysis_id(self.previous_id)
        else:
            clear_analysis_id()
