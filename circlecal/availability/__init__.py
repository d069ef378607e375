"""Availability: common free time across participants

Components:
    intervals.py: Pure interval algebra (merge, invert, intersect, pick slots)
    orchestrator.py: find_common_slots and confirm_slot use cases
"""
