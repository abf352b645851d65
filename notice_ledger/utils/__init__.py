"""Utility helpers."""

from notice_ledger.utils.serialization import canonicalize_json, json_safe

__all__ = ["canonicalize_json", "json_safe"]
