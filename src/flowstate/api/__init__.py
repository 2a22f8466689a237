"""HTTP inspection and control surface for a running :class:`StateEngine`."""
