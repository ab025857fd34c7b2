"""Villages care-coordination notification service."""
