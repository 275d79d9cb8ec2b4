"""
Routing Module
==============

Ticket intake, department routing (rules, AI, heuristics), routing
feedback and AI reply suggestions.
"""
