"""Real-time change notification for logical documents."""
