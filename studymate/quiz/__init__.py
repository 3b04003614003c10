"""Quiz generation, parsing, heuristic fallback and attempt scoring."""
