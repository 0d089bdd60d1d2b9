"""
Infrastructure layer containing external dependencies and I/O operations.

This layer handles configuration, logging, chunking of sources and all
communication with the upload backend and the object store.
"""
