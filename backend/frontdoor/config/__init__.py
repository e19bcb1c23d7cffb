"""Runtime settings and tenant configuration loading."""
