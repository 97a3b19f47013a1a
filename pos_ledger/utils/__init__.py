"""Utility functions for the POS ledger."""

from pos_ledger.utils.hashing import canonicalize_json, hash_payload

__all__ = ["canonicalize_json", "hash_payload"]
