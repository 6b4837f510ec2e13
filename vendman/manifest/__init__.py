"""Manifest — the persisted declaration of every vendored dependency.

This package provides:
- The dependency model: tracking vs. pinned entries keyed by derived name
- The manifest store: load, save, initialize and lock the on-disk manifest
"""
