"""
Voice Operator
==============

Voice-driven browser operator: a page-side runtime that maps, scans and
operates web pages, and a server-side orchestrator that turns spoken
requests into one tool call at a time.
"""

__version__ = "0.1.0"
