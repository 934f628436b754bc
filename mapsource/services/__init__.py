"""Protocol builders, capabilities handling and selection heuristics."""
