"""Services that sit between the Discord cogs and the core components."""
