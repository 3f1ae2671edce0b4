"""Order and invoice numbering, duplicate repair and line-item reconciliation."""
