"""Domain services for the EV service center."""
