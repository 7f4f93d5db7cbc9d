"""PSD2 open banking clients."""
