"""Merge module: download, concatenate, size-plan and deliver videos."""

from app.modules.merge.router import router as merge_router

__all__ = ["merge_router"]
