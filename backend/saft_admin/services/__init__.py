"""Services module.

This module provides the service layer architecture:
- exceptions: Custom service exceptions
- numbering: Document number formatting, allocation and duplicate repair
- reconciliation: Line-item verification and synthesis against catalog data
- orders / invoices: Record creation wired through allocation and reconciliation
"""
