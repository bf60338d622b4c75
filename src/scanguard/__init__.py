"""
ScanGuard - Image Screening and Offense Escalation for Discord

ScanGuard watches image attachments posted in the guilds it serves, screens them
for prohibited content, and escalates consequences for repeat offenders across
every guild the bot is a member of.

Core Components:

- **Detection**: A bounded-concurrency scan scheduler feeding a two-stage
  pipeline (perceptual-hash blocklist pre-filter, then an external classifier
  scored against configurable thresholds)
- **Escalation**: A per-user offense state machine. First offenses are handled
  locally (ban or timeout); repeat offenses are queued for moderator review and,
  once approved, fanned out as a ban to every guild
- **Persistence**: SQLite storage for guild settings, detections, the hash
  blocklist, offense records and sanctions
- **Bot Runtime**: Py-Cord listener cogs, moderator alerts, review buttons and
  slash commands for blocklist management

Usage:
    from scanguard.main import main
    main()
"""
