"""Support desk backend.

Customer-support ticketing with cookie sessions and Stripe subscription lookup.

Core concepts:
- A user is identified by their (normalized) email address.
- A ticket belongs to exactly one author; its messages form an append-only thread.
- Staff users (access_level >= 1) may answer any ticket.

See SPEC_FULL.md and DESIGN.md for the full picture.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
