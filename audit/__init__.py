"""
Content format audit: classify stored text, report anomalies, repair on request.
"""

from audit.auditor import AuditReport, ContentField, run_content_audit, write_audit_report
from audit.formats import ContentFormat, classify
from audit.repair import propose_repair

__all__ = [
    "AuditReport",
    "classify",
    "ContentField",
    "ContentFormat",
    "propose_repair",
    "run_content_audit",
    "write_audit_report",
]
