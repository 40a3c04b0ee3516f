"""Scout race meet registrations: validation, transactional creation, admin sessions."""

__version__ = "1.0.0"
