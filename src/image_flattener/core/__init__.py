"""Layer chain resolution, merging and finalization."""
