"""
Approval Kernel

A configurable multi-step approval workflow engine for business documents
(purchase requisitions, purchase orders, RFQs, supplier registrations,
blanket orders, ...):
- Versioned, data-driven workflow definitions
- Conditional step activation, skip and re-routing
- Runtime approver resolution against an identity directory
- any / all / percentage consensus over an append-only action log
- Timeout escalation driven by an external scheduler
"""

__version__ = "0.1.0"
