"""A layered Flask service: JSON gateway, tracing, coded errors, dynamic config, storage, ID allocation and jobs."""

__version__ = "0.1.0"