"""Discord-facing layer: cogs, slash commands and interactive views."""
