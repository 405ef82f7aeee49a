"""mrsync command line interface."""
