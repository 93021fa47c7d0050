"""Client-side ticket queue sync and optimistic assignment engine."""
