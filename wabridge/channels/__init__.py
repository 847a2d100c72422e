"""Source and control network adapters."""
