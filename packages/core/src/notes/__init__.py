"""Contact-form notes: persistence and notifications."""
