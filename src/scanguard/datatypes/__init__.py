"""
Data types shared across ScanGuard.

- **discord_datatypes.py**: Type-safe snowflake wrappers (UserID, GuildID, ChannelID, MessageID).
- **image_datatypes.py**: ImageURL, ImageRef and ScanRequest.
- **detection_datatypes.py**: KnownHash, HashMatchResult, APIDetectionResult, DetectionResult.
- **sanction_datatypes.py**: OffenseRecord, SanctionRecord, ModeratorReviewItem and escalation results.
- **guild_settings.py**: GuildSettings.
"""
