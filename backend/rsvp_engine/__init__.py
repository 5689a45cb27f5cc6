"""RSVP admission and waitlist engine."""
