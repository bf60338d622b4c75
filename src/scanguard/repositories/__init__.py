"""
Per-table repositories. Each exposes static coroutines taking an open
aiosqlite connection; callers decide the transaction boundaries.
"""
