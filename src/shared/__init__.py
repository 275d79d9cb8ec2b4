"""
Shared Kernel Module
====================

Shared infrastructure used by both bounded contexts (Knowledge QA and
Ticket Routing).

Architecture Pattern: Modular Monolith
- Each module (knowledge, routing) is a bounded context
- Shared kernel contains only generic infrastructure (logging, metrics,
  HTTP middleware)

DO NOT add answer composition or routing logic to the shared kernel.
"""

__version__ = "1.0.0"
