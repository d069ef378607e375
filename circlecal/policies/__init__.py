"""Calendar Policies: who may see what

Components:
    models.py: Permission, relationship, event and attendee records
    friendship.py: Bidirectional relationship lookups, block and friend checks
    calendar_access.py: Per (owner, viewer) permission resolution
    redaction.py: Event and attendee redaction, calendar and event read paths
"""
