"""
core/audit.py -- Audit trail for security-relevant engine events.

Events are plain log records on the "lunatransfer.audit" logger so they can
be routed (file, syslog, collector) with standard logging configuration and
no extra dependency. The event name is always the first token of the message
to keep the trail greppable:

    GROUP_USER_REMOVED actor=alice target=bob group=eng -- removed from group

Layer rule: core/ is the kernel. No imports from api/ or auth/.
"""

import logging

audit_logger = logging.getLogger("lunatransfer.audit")


def log_event(event: str, actor: str | None, message: str = "", **context) -> None:
    """Record one audit event.

    Args:
        event:   Upper-case event name (e.g. "FILE_SHARED").
        actor:   Username that triggered the event; "system" when None.
        message: Free-form human readable detail.
        context: Extra key=value fields (target, group, path, ...). None values are skipped.
    """
    fields = " ".join(f"{k}={v}" for k, v in context.items() if v is not None)
    audit_logger.info(
        "%s actor=%s%s%s",
        event,
        actor or "system",
        f" {fields}" if fields else "",
        f" -- {message}" if message else "",
    )
