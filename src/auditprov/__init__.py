# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""auditprov - Provenance graph reconstruction from Linux audit logs."""

__version__ = "0.1.0"

from auditprov.reporter.engine import AuditReporter

__all__ = [
    "AuditReporter",
    "__version__",
]
