"""Church Song Navigator - weekly worship song navigation for a single church."""
