"""AgendFy subscription lifecycle and plan entitlement service."""
