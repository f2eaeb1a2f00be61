"""AG2 agents backing the generation capability."""
