"""jobtrace command line interface."""
