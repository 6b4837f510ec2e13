"""Sync — the workflows that keep vendored clones in line with the manifest.

This package provides:
- vend: declare a dependency and make its initial clone
- update: reconcile every declared dependency with its upstream
- list: report each clone's current branch and commit
- remove / clean: tear down one dependency or the whole workspace
"""
